"""
Auto-payment orchestrator.

Charges open invoices against the payment method stored for the
subscription. The provider is looked up by the identity stored on the
config, so adding a provider never touches this module.

Failure policy: every failed or erroring charge increments failed_attempts;
once it reaches auto_payment_max_failed_attempts the config is disabled
and stays disabled until someone re-enables it.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from common.core.clock import utc_now
from common.core.config import settings
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.auto_payment import (
    AutoPaymentAttempt,
    AutoPaymentConfig,
    AutoPaymentSetup,
    AutoPaymentSweepReport,
    ChargeResult,
)
from packages.billing.models.domain.enums import (
    ChargeStatus,
    InvoiceStatus,
    NotificationType,
    PaymentProvider,
)
from packages.billing.models.domain.invoice import Invoice
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.providers.payment.factory import get_payment_providers
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.repositories.auto_payment_repository import (
    AutoPaymentConfigRepository,
)
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.payment_repository import PaymentRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.errors import store_failure
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.notification_service import NotificationService

logger = get_logger(__name__)

CONFIG_ENTITY = "auto_payment_config"


def _not_configured(subscription_id: int) -> BillingResult:
    return BillingResult.fail(
        BillingErrorCode.AUTO_PAYMENT_NOT_CONFIGURED,
        f"Auto-payment is not configured for subscription {subscription_id}",
    )


class AutoPaymentService:
    """Service for stored payment methods and automatic invoice collection."""

    def __init__(
        self,
        invoice_service: Optional[InvoiceService] = None,
        providers: Optional[Dict[PaymentProvider, PaymentProviderInterface]] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.config_repo = AutoPaymentConfigRepository()
        self.invoice_repo = InvoiceRepository()
        self.payment_repo = PaymentRepository()
        self.subscription_repo = SubscriptionRepository()
        self.notifications = notification_service or NotificationService()
        self.invoices = invoice_service or InvoiceService(
            notification_service=self.notifications
        )
        self.providers = providers if providers is not None else get_payment_providers()
        self.audit = AuditService()

    @trace_span
    async def setup_auto_payment(
        self,
        subscription_id: int,
        setup: AutoPaymentSetup,
        actor: Optional[str] = None,
    ) -> BillingResult[AutoPaymentConfig]:
        """Store (or replace) the payment method and enable auto-payment."""
        if PaymentProvider(setup.provider) not in self.providers:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                f"Payment provider {setup.provider} is not available",
            )
        if await self.subscription_repo.get(subscription_id) is None:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                f"Subscription {subscription_id} not found",
            )

        try:
            before = await self.config_repo.get_by_subscription_id(subscription_id)
            config = await self.config_repo.upsert(subscription_id, setup)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Auto-payment setup", e, subscription_id=subscription_id
            )

        logger.info(
            f"Configured {config.provider.value} auto-payment for subscription {subscription_id}",
            extra={
                "subscription_id": subscription_id,
                "provider": config.provider.value,
            },
        )
        await self.audit.record(
            AuditAction.AUTO_PAYMENT_CONFIGURED,
            CONFIG_ENTITY,
            config.id,
            before=before,
            after=config,
            actor=actor,
        )
        return BillingResult.ok(config)

    @trace_span
    async def enable_auto_payment(
        self, subscription_id: int, actor: Optional[str] = None
    ) -> BillingResult[AutoPaymentConfig]:
        """Re-enable collection and clear the failure counter."""
        try:
            before = await self.config_repo.get_by_subscription_id(subscription_id)
            if before is None:
                return _not_configured(subscription_id)

            config = await self.config_repo.set_fields(
                subscription_id,
                is_enabled=True,
                failed_attempts=0,
                last_failure_reason=None,
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Auto-payment enable", e, subscription_id=subscription_id
            )
        await self.audit.record(
            AuditAction.AUTO_PAYMENT_ENABLED,
            CONFIG_ENTITY,
            config.id,
            before=before,
            after=config,
            actor=actor,
        )
        return BillingResult.ok(config)

    @trace_span
    async def disable_auto_payment(
        self, subscription_id: int, actor: Optional[str] = None
    ) -> BillingResult[AutoPaymentConfig]:
        try:
            before = await self.config_repo.get_by_subscription_id(subscription_id)
            if before is None:
                return _not_configured(subscription_id)

            config = await self.config_repo.set_fields(
                subscription_id, is_enabled=False
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Auto-payment disable", e, subscription_id=subscription_id
            )
        await self.audit.record(
            AuditAction.AUTO_PAYMENT_DISABLED,
            CONFIG_ENTITY,
            config.id,
            before=before,
            after=config,
            actor=actor,
        )
        return BillingResult.ok(config)

    @trace_span
    async def get_config(self, subscription_id: int) -> BillingResult[AutoPaymentConfig]:
        try:
            config = await self.config_repo.get_by_subscription_id(subscription_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Auto-payment lookup", e, subscription_id=subscription_id
            )
        if config is None:
            return _not_configured(subscription_id)
        return BillingResult.ok(config)

    async def _charge(
        self,
        provider: PaymentProviderInterface,
        config: AutoPaymentConfig,
        invoice: Invoice,
        amount: Decimal,
    ) -> ChargeResult:
        """Call the provider. Errors become a failed charge so the failure policy applies."""
        metadata = {
            "invoice_id": invoice.id,
            "invoice_number": invoice.number,
            "subscription_id": invoice.subscription_id,
            # Same key for a retried attempt, new key for the next attempt
            "idempotency_key": f"autopay-{invoice.id}-{config.failed_attempts + 1}",
        }
        try:
            return await provider.charge(
                config.payment_method_ref,
                amount,
                invoice.currency,
                metadata,
                customer_ref=config.customer_ref,
            )
        except Exception as e:
            logger.error(
                f"{config.provider.value} charge for invoice {invoice.number} raised: {e}",
                extra={
                    "invoice_id": invoice.id,
                    "subscription_id": invoice.subscription_id,
                    "provider": config.provider.value,
                },
                exc_info=True,
            )
            return ChargeResult.failed(str(e) or e.__class__.__name__)

    @trace_span
    async def process_auto_payment(
        self, invoice_id: int, actor: Optional[str] = None
    ) -> BillingResult[AutoPaymentAttempt]:
        """
        Try to collect the outstanding balance of one invoice.

        Rejected without contacting the provider unless the invoice is open,
        has no payment awaiting customer action, and auto-payment is enabled.
        A declined charge is a successful result with status FAILED.
        """
        try:
            invoice = await self.invoice_repo.get(invoice_id)
            if invoice is None:
                return BillingResult.fail(
                    BillingErrorCode.INVOICE_NOT_FOUND, f"Invoice {invoice_id} not found"
                )
            if invoice.status != InvoiceStatus.OPEN:
                return BillingResult.fail(
                    BillingErrorCode.INVALID_STATE,
                    f"Invoice {invoice.number} is {invoice.status.value}; only open invoices are charged",
                )

            config = await self.config_repo.get_by_subscription_id(
                invoice.subscription_id
            )
            if config is None:
                return _not_configured(invoice.subscription_id)
            if not config.is_enabled:
                return BillingResult.fail(
                    BillingErrorCode.AUTO_PAYMENT_DISABLED,
                    f"Auto-payment is disabled for subscription {invoice.subscription_id}",
                )

            if await self.payment_repo.has_pending(invoice_id):
                return BillingResult.fail(
                    BillingErrorCode.INVALID_STATE,
                    f"Invoice {invoice.number} has a payment awaiting customer action",
                )
            amount = round_money(
                invoice.total - await self.payment_repo.sum_completed(invoice_id)
            )
            if amount <= 0:
                return BillingResult.fail(
                    BillingErrorCode.INVALID_STATE,
                    f"Invoice {invoice.number} has no outstanding balance",
                )
        except SQLAlchemyError as e:
            return store_failure(logger, "Auto-payment", e, invoice_id=invoice_id)

        provider = self.providers.get(config.provider)
        if provider is None:
            return BillingResult.fail(
                BillingErrorCode.PAYMENT_FAILED,
                f"Payment provider {config.provider.value} is not available",
            )

        charge = await self._charge(provider, config, invoice, amount)

        if charge.status == ChargeStatus.SUCCEEDED:
            result = await self._on_succeeded(provider, config, invoice, amount, charge, actor)
        elif charge.status == ChargeStatus.REQUIRES_ACTION:
            result = await self._on_requires_action(provider, invoice, amount, charge, actor)
        else:
            result = await self._on_failed(config, invoice, amount, charge)

        if result.success:
            await self.audit.record(
                AuditAction.AUTO_PAYMENT_ATTEMPTED,
                "invoice",
                invoice_id,
                before=config,
                after=result.data,
                actor=actor,
            )
        return result

    async def _on_succeeded(
        self,
        provider: PaymentProviderInterface,
        config: AutoPaymentConfig,
        invoice: Invoice,
        amount: Decimal,
        charge: ChargeResult,
        actor: Optional[str],
    ) -> BillingResult[AutoPaymentAttempt]:
        registered = await self.invoices.register_payment(
            invoice.id,
            amount,
            provider.provider.payment_method(),
            provider_payment_id=charge.provider_payment_id,
            notes="Auto-payment",
            actor=actor,
        )
        if not registered.success:
            # The provider captured the money; this needs manual reconciliation
            logger.error(
                f"Charge {charge.provider_payment_id} succeeded but the payment could not be registered on "
                f"invoice {invoice.number}: {registered.error.message}",
                extra={
                    "invoice_id": invoice.id,
                    "provider_payment_id": charge.provider_payment_id,
                    "error_code": registered.error_code.value,
                },
            )
            return registered

        config = await self.config_repo.record_success(config.subscription_id)
        logger.info(
            f"Auto-payment collected {amount} for invoice {invoice.number}",
            extra={"invoice_id": invoice.id, "amount": str(amount)},
        )
        return BillingResult.ok(
            AutoPaymentAttempt(
                invoice_id=invoice.id,
                status=ChargeStatus.SUCCEEDED,
                amount=amount,
                payment_id=registered.data.payment.id,
                failed_attempts=config.failed_attempts,
            )
        )

    async def _on_requires_action(
        self,
        provider: PaymentProviderInterface,
        invoice: Invoice,
        amount: Decimal,
        charge: ChargeResult,
        actor: Optional[str],
    ) -> BillingResult[AutoPaymentAttempt]:
        pending = await self.invoices.record_pending_payment(
            invoice.id,
            amount,
            provider.provider.payment_method(),
            provider_payment_id=charge.provider_payment_id,
            provider_reference=charge.action_url,
            notes="Auto-payment awaiting customer authentication",
            actor=actor,
        )
        if not pending.success:
            return pending

        await self.config_repo.set_fields(
            invoice.subscription_id, last_attempt_at=utc_now()
        )
        logger.info(
            f"Auto-payment for invoice {invoice.number} requires customer action",
            extra={"invoice_id": invoice.id, "payment_id": pending.data.id},
        )
        return BillingResult.ok(
            AutoPaymentAttempt(
                invoice_id=invoice.id,
                status=ChargeStatus.REQUIRES_ACTION,
                amount=amount,
                payment_id=pending.data.id,
                action_url=charge.action_url,
            )
        )

    async def _on_failed(
        self,
        config: AutoPaymentConfig,
        invoice: Invoice,
        amount: Decimal,
        charge: ChargeResult,
    ) -> BillingResult[AutoPaymentAttempt]:
        reason = charge.failure_reason or "Payment failed"
        try:
            config = await self.config_repo.record_failure(
                config.subscription_id,
                reason,
                settings.auto_payment_max_failed_attempts,
            )
        except SQLAlchemyError as e:
            return store_failure(logger, "Auto-payment failure", e, invoice_id=invoice.id)

        logger.warning(
            f"Auto-payment failed for invoice {invoice.number} ({config.failed_attempts} failures): {reason}",
            extra={
                "invoice_id": invoice.id,
                "subscription_id": invoice.subscription_id,
                "failed_attempts": config.failed_attempts,
                "auto_payment_disabled": not config.is_enabled,
            },
        )
        await self.notifications.notify(
            NotificationType.PAYMENT_FAILED,
            invoice.subscription_id,
            invoice_id=invoice.id,
            payload={
                "reason": reason,
                "amount": str(amount),
                "failed_attempts": config.failed_attempts,
                "auto_payment_disabled": not config.is_enabled,
            },
        )
        return BillingResult.ok(
            AutoPaymentAttempt(
                invoice_id=invoice.id,
                status=ChargeStatus.FAILED,
                amount=amount,
                failure_reason=reason,
                failed_attempts=config.failed_attempts,
                auto_payment_disabled=not config.is_enabled,
            )
        )

    @trace_span
    async def process_all_pending_auto_payments(
        self, now: Optional[datetime] = None
    ) -> AutoPaymentSweepReport:
        """
        Charge every open, due invoice with auto-payment enabled.

        Invoices are processed one by one; an error on one is logged and
        counted and the sweep moves on. Failed invoices are retried on the
        next run, never in-line.
        """
        now = now or utc_now()
        report = AutoPaymentSweepReport()
        invoices = await self.invoice_repo.get_due_auto_payable(now)
        logger.info(f"Auto-payment sweep: {len(invoices)} invoices due")

        for invoice in invoices:
            report.processed += 1
            try:
                result = await self.process_auto_payment(invoice.id)
            except Exception as e:
                logger.error(
                    f"Auto-payment sweep error on invoice {invoice.number}: {e}",
                    extra={"invoice_id": invoice.id},
                    exc_info=True,
                )
                report.errors += 1
                report.failed_invoice_ids.append(invoice.id)
                continue

            if not result.success:
                report.errors += 1
                report.failed_invoice_ids.append(invoice.id)
            elif result.data.status == ChargeStatus.SUCCEEDED:
                report.succeeded += 1
            elif result.data.status == ChargeStatus.REQUIRES_ACTION:
                report.requires_action += 1
            else:
                report.failed += 1
                report.failed_invoice_ids.append(invoice.id)

        logger.info(
            f"Auto-payment sweep done: {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.requires_action} need action, {report.errors} errors",
            extra=report.model_dump(exclude={"failed_invoice_ids"}),
        )
        return report
