"""
Service for billing metrics.

MRR counts every subscription that is currently billable (ACTIVE or
PAST_DUE) at its plan price, with annual subscriptions spread over twelve
months. Revenue is cash actually collected in the window.
"""

from datetime import datetime
from decimal import Decimal

from common.core.config import settings
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from packages.billing.models.domain.enums import (
    BillingCycle,
    SubscriptionStatus,
    TokenTransactionType,
)
from packages.billing.models.domain.metrics import BillingMetrics
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.payment_repository import PaymentRepository
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.repositories.token_transaction_repository import (
    TokenTransactionRepository,
)

logger = get_logger(__name__)

BILLABLE_STATUSES = [SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE]


class BillingMetricsService:
    def __init__(self):
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.invoice_repo = InvoiceRepository()
        self.payment_repo = PaymentRepository()
        self.token_repo = TokenTransactionRepository()

    async def _mrr(self) -> Decimal:
        plans = {plan.id: plan for plan in await self.plan_repo.list_plans(active_only=False)}
        mrr = Decimal("0")
        for subscription in await self.subscription_repo.list_by_status(BILLABLE_STATUSES):
            plan = plans.get(subscription.plan_id)
            if plan is None:
                logger.warning(
                    f"Subscription {subscription.id} references missing plan {subscription.plan_id}",
                    extra={"subscription_id": subscription.id},
                )
                continue
            if subscription.billing_cycle == BillingCycle.ANNUAL:
                mrr += plan.effective_annual_price() / 12
            else:
                mrr += plan.monthly_price
        return mrr

    @trace_span
    @readonly
    async def get_metrics(
        self, period_start: datetime, period_end: datetime
    ) -> BillingResult[BillingMetrics]:
        """Metrics for [period_start, period_end)."""
        if period_end <= period_start:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "period_end must be after period_start"
            )

        mrr = await self._mrr()
        usage = await self.token_repo.totals_by_type(period_start, period_end)

        return BillingResult.ok(
            BillingMetrics(
                period_start=period_start,
                period_end=period_end,
                currency=settings.billing_default_currency,
                mrr=round_money(mrr),
                arr=round_money(mrr * 12),
                total_revenue=await self.payment_repo.sum_completed_between(
                    period_start, period_end
                ),
                pending_revenue=round_money(await self.invoice_repo.sum_open_totals()),
                subscriptions_by_status=await self.subscription_repo.count_by_status(),
                invoices_by_status=await self.invoice_repo.count_by_status(
                    period_start, period_end
                ),
                tokens_consumed=usage.get(TokenTransactionType.USAGE.value, 0),
                tokens_purchased=usage.get(TokenTransactionType.PURCHASE.value, 0),
                token_revenue=round_money(
                    await self.token_repo.purchase_revenue(period_start, period_end)
                ),
                token_usage_by_type=usage,
            )
        )
