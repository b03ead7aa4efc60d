"""
Scheduled billing sweep.

One run renews every subscription whose period has ended, credits the
monthly allowance of running annual subscriptions, then charges
every due OPEN invoice that has auto-payment enabled, and exits. The
schedule lives outside the process (cron or a Kubernetes CronJob).
"""

from datetime import datetime
from typing import List, Optional

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import get_logger
from packages.billing.models.domain.auto_payment import AutoPaymentSweepReport
from packages.billing.services.auto_payment_service import AutoPaymentService
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.notification_service import NotificationService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.token_ledger_service import TokenLedgerService

logger = get_logger(__name__)


class BillingSweepWorker:
    """Runs the renewal and auto-payment sweeps once."""

    def __init__(
        self,
        skip_renewals: bool = False,
        notification_service: Optional[NotificationService] = None,
    ):
        self.skip_renewals = skip_renewals
        self.running = False
        self.notifications = notification_service or NotificationService()

        coupons = CouponService()
        invoices = InvoiceService(
            coupon_service=coupons, notification_service=self.notifications
        )
        self.subscriptions = SubscriptionService(
            ledger=TokenLedgerService(notification_service=self.notifications),
            invoice_service=invoices,
            coupon_service=coupons,
        )
        self.auto_payments = AutoPaymentService(
            invoice_service=invoices, notification_service=self.notifications
        )

        self.renewed: List[int] = []
        self.allowances_reset: List[int] = []
        self.report: Optional[AutoPaymentSweepReport] = None

    async def run_once(self, now: Optional[datetime] = None) -> AutoPaymentSweepReport:
        now = now or utc_now()
        if not self.skip_renewals:
            self.renewed = await self.subscriptions.renew_due_subscriptions(now)
            logger.info(
                f"Renewed {len(self.renewed)} subscriptions",
                extra={"renewed_count": len(self.renewed)},
            )
            self.allowances_reset = await self.subscriptions.reset_due_allowances(now)
            logger.info(
                f"Checked monthly allowance of {len(self.allowances_reset)} annual subscriptions",
                extra={"allowance_count": len(self.allowances_reset)},
            )

        self.report = await self.auto_payments.process_all_pending_auto_payments(now)
        logger.info(
            f"Auto-payment sweep: {self.report.processed} processed, "
            f"{self.report.succeeded} paid, {self.report.failed} failed, "
            f"{self.report.errors} errors",
            extra=self.report.model_dump(exclude={"failed_invoice_ids"}),
        )
        return self.report

    async def start(self):
        self.running = True
        try:
            await self.run_once()
        finally:
            self.running = False

    async def stop(self):
        self.running = False
        await self.notifications.close()
