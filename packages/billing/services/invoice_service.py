"""
Invoice and payment ledger.

Invoice lifecycle:
    draft --open--> open --pay--> open | paid
    draft | open --void--> void
    open --mark_uncollectible--> uncollectible

Paid invoices are never voided; a refund goes through a credit note issued
outside this service.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.core.clock import utc_now
from common.core.config import settings
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.enums import (
    InvoiceItemType,
    InvoiceStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    ProrationLineType,
    SubscriptionStatus,
)
from packages.billing.models.domain.invoice import (
    Invoice,
    InvoiceDetail,
    InvoiceItemInput,
    InvoiceTotals,
    Payment,
    PaymentCreateModel,
    PaymentReceipt,
)
from packages.billing.models.domain.proration import ProrationResult
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.models.domain.subscription import SubscriptionUpdateModel
from packages.billing.repositories.invoice_repository import (
    InvoiceRepository,
    format_invoice_number,
    invoice_number_prefix,
    next_sequence,
)
from packages.billing.repositories.payment_repository import PaymentRepository
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.errors import store_failure
from packages.billing.services.notification_service import NotificationService

logger = get_logger(__name__)

INVOICE_ENTITY = "invoice"
PAYMENT_ENTITY = "payment"


class InvoiceNumberExhaustedError(Exception):
    """Every attempt to claim an invoice number collided with another writer."""


def _invoice_not_found(invoice_id: int) -> BillingResult:
    return BillingResult.fail(
        BillingErrorCode.INVOICE_NOT_FOUND, f"Invoice {invoice_id} not found"
    )


class InvoiceService:
    """Service for invoices, payments and invoice state transitions."""

    def __init__(
        self,
        coupon_service: Optional[CouponService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.invoice_repo = InvoiceRepository()
        self.payment_repo = PaymentRepository()
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.coupons = coupon_service or CouponService()
        self.notifications = notification_service or NotificationService()
        self.audit = AuditService()

    async def _detail(self, invoice: Invoice) -> InvoiceDetail:
        items = await self.invoice_repo.get_items(invoice.id)
        payments = await self.payment_repo.list_for_invoice(invoice.id)
        amount_paid = await self.payment_repo.sum_completed(invoice.id)
        return InvoiceDetail(
            invoice=invoice, items=items, payments=payments, amount_paid=amount_paid
        )

    async def _insert_numbered(self, values: dict, items: List[InvoiceItemInput]) -> Invoice:
        """
        Claim the next INV-YYYYMM-NNNN number and insert the invoice.

        The number is read-last-and-increment; the unique constraint on the
        column catches a concurrent writer and the insert is retried with a
        fresh number.
        """
        prefix = invoice_number_prefix(utc_now())
        attempts = settings.billing_invoice_number_max_retries
        for attempt in range(1, attempts + 1):
            last_number = await self.invoice_repo.get_last_number(prefix)
            number = format_invoice_number(prefix, next_sequence(last_number, prefix))
            try:
                return await self.invoice_repo.insert_with_items(
                    {**values, "number": number}, items
                )
            except IntegrityError:
                logger.warning(
                    f"Invoice number {number} taken, retrying ({attempt}/{attempts})",
                    extra={"invoice_number": number, "attempt": attempt},
                )
        raise InvoiceNumberExhaustedError(
            f"Could not allocate an invoice number after {attempts} attempts"
        )

    @trace_span
    async def create_invoice(
        self,
        subscription_id: int,
        items: List[InvoiceItemInput],
        tax_rate: Optional[Decimal] = None,
        currency: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        open_immediately: bool = False,
        actor: Optional[str] = None,
    ) -> BillingResult[InvoiceDetail]:
        """
        Create an invoice with its lines and a frozen copy of the current plan.

        subtotal = sum of line totals, tax = subtotal * tax_rate / 100,
        total = subtotal + tax, each rounded half-up to cents.
        """
        if not items:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "An invoice needs at least one item"
            )
        tax_rate = settings.billing_default_tax_rate if tax_rate is None else tax_rate
        if not (Decimal("0") <= tax_rate <= Decimal("100")):
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Tax rate must be between 0 and 100"
            )
        subtotal = sum((item.line_total for item in items), Decimal("0"))
        if subtotal < 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Invoice subtotal cannot be negative"
            )
        if period_start and period_end and period_end <= period_start:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Period end must be after period start"
            )

        now = utc_now()
        try:
            async with transaction():
                subscription = await self.subscription_repo.get(subscription_id)
                if subscription is None:
                    return BillingResult.fail(
                        BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                        f"Subscription {subscription_id} not found",
                    )
                plan = await self.plan_repo.get(subscription.plan_id)
                if plan is None:
                    return BillingResult.fail(
                        BillingErrorCode.PLAN_NOT_FOUND,
                        f"Plan {subscription.plan_id} not found",
                    )

                totals = InvoiceTotals.compute(subtotal, tax_rate)
                status = InvoiceStatus.OPEN if open_immediately else InvoiceStatus.DRAFT
                invoice = await self._insert_numbered(
                    {
                        "subscription_id": subscription_id,
                        "status": status.value,
                        "currency": currency or plan.currency,
                        "subtotal": totals.subtotal,
                        "tax_rate": totals.tax_rate,
                        "tax": totals.tax,
                        "discount": totals.discount,
                        "total": totals.total,
                        "period_start": period_start,
                        "period_end": period_end,
                        "due_date": due_date
                        or now + timedelta(days=settings.billing_invoice_due_days),
                        "plan_snapshot": plan.snapshot(subscription.billing_cycle),
                        "notes": notes,
                        "opened_at": now if open_immediately else None,
                    },
                    items,
                )
                detail = await self._detail(invoice)
        except InvoiceNumberExhaustedError as e:
            return store_failure(
                logger, "Invoice creation", e, subscription_id=subscription_id
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Invoice creation", e, subscription_id=subscription_id
            )

        logger.info(
            f"Created invoice {invoice.number} for subscription {subscription_id}: total {invoice.total}",
            extra={
                "invoice_id": invoice.id,
                "subscription_id": subscription_id,
                "total": str(invoice.total),
                "status": invoice.status.value,
            },
        )
        await self.audit.record(
            AuditAction.INVOICE_CREATED, INVOICE_ENTITY, invoice.id, after=invoice, actor=actor
        )
        if open_immediately:
            await self._notify_issued(invoice)
        return BillingResult.ok(detail)

    async def _notify_issued(self, invoice: Invoice) -> None:
        await self.notifications.notify(
            NotificationType.INVOICE_CREATED,
            invoice.subscription_id,
            invoice_id=invoice.id,
            payload={
                "number": invoice.number,
                "total": str(invoice.total),
                "currency": invoice.currency,
                "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
            },
        )

    async def _state_conflict(self, invoice_id: int, action: str) -> BillingResult:
        """Explain why a guarded transition changed no row."""
        invoice = await self.invoice_repo.get(invoice_id)
        if invoice is None:
            return _invoice_not_found(invoice_id)
        return BillingResult.fail(
            BillingErrorCode.INVALID_STATE,
            f"Cannot {action} invoice {invoice.number} in status {invoice.status.value}",
        )

    @trace_span
    async def open_invoice(
        self, invoice_id: int, actor: Optional[str] = None
    ) -> BillingResult[Invoice]:
        """Issue a draft invoice to the customer."""
        try:
            async with transaction():
                before = await self.invoice_repo.get_for_update(invoice_id)
                if not await self.invoice_repo.transition(
                    invoice_id,
                    [InvoiceStatus.DRAFT],
                    InvoiceStatus.OPEN,
                    opened_at=utc_now(),
                ):
                    return await self._state_conflict(invoice_id, "open")
                invoice = await self.invoice_repo.get(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Invoice open", e, invoice_id=invoice_id)

        await self.audit.record(
            AuditAction.INVOICE_OPENED,
            INVOICE_ENTITY,
            invoice_id,
            before=before,
            after=invoice,
            actor=actor,
        )
        await self._notify_issued(invoice)
        return BillingResult.ok(invoice)

    @trace_span
    async def void_invoice(
        self, invoice_id: int, reason: str, actor: Optional[str] = None
    ) -> BillingResult[Invoice]:
        """Cancel a draft or open invoice. Pending payments on it are failed."""
        if not reason or not reason.strip():
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "A void reason is required"
            )

        try:
            async with transaction():
                before = await self.invoice_repo.get_for_update(invoice_id)
                if before is None:
                    return _invoice_not_found(invoice_id)
                if before.status == InvoiceStatus.PAID:
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        f"Invoice {before.number} is paid and cannot be voided; issue a credit note instead",
                    )
                if not await self.invoice_repo.transition(
                    invoice_id,
                    [InvoiceStatus.DRAFT, InvoiceStatus.OPEN],
                    InvoiceStatus.VOID,
                    voided_at=utc_now(),
                    void_reason=reason[:500],
                ):
                    return await self._state_conflict(invoice_id, "void")
                failed_payments = await self.payment_repo.fail_pending_for_invoice(
                    invoice_id, f"Invoice voided: {reason}"[:500]
                )
                invoice = await self.invoice_repo.get(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Invoice void", e, invoice_id=invoice_id)

        logger.info(
            f"Voided invoice {invoice.number}, failed {failed_payments} pending payments",
            extra={"invoice_id": invoice_id, "failed_payments": failed_payments},
        )
        await self.audit.record(
            AuditAction.INVOICE_VOIDED,
            INVOICE_ENTITY,
            invoice_id,
            before=before,
            after=invoice,
            actor=actor,
        )
        return BillingResult.ok(invoice)

    @trace_span
    async def mark_uncollectible(
        self, invoice_id: int, actor: Optional[str] = None
    ) -> BillingResult[Invoice]:
        try:
            async with transaction():
                before = await self.invoice_repo.get_for_update(invoice_id)
                if not await self.invoice_repo.transition(
                    invoice_id, [InvoiceStatus.OPEN], InvoiceStatus.UNCOLLECTIBLE
                ):
                    return await self._state_conflict(invoice_id, "mark uncollectible")
                invoice = await self.invoice_repo.get(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Invoice uncollectible", e, invoice_id=invoice_id
            )

        await self.audit.record(
            AuditAction.INVOICE_UNCOLLECTIBLE,
            INVOICE_ENTITY,
            invoice_id,
            before=before,
            after=invoice,
            actor=actor,
        )
        return BillingResult.ok(invoice)

    async def _payable(
        self, invoice_id: int, amount: Decimal
    ) -> BillingResult[Invoice]:
        """Lock the invoice and check it can take amount. Must run inside a transaction."""
        invoice = await self.invoice_repo.get_for_update(invoice_id)
        if invoice is None:
            return _invoice_not_found(invoice_id)
        if invoice.status != InvoiceStatus.OPEN:
            return BillingResult.fail(
                BillingErrorCode.INVALID_STATE,
                f"Invoice {invoice.number} is {invoice.status.value}; only open invoices accept payments",
            )
        paid = await self.payment_repo.sum_completed(invoice_id)
        remaining = round_money(invoice.total - paid)
        if amount > remaining:
            return BillingResult.fail(
                BillingErrorCode.AMOUNT_EXCEEDS_BALANCE,
                f"Payment of {round_money(amount)} exceeds the remaining balance of {remaining}",
            )
        return BillingResult.ok(invoice)

    async def _settle(self, invoice: Invoice, now: datetime) -> Tuple[Decimal, bool]:
        """
        Flip the invoice to PAID once completed payments cover the total.

        Runs in the transaction that recorded the payment.
        """
        paid = await self.payment_repo.sum_completed(invoice.id)
        fully_paid = paid >= invoice.total
        if fully_paid:
            await self.invoice_repo.transition(
                invoice.id, [InvoiceStatus.OPEN], InvoiceStatus.PAID, paid_at=now
            )
            subscription = await self.subscription_repo.get_for_update(
                invoice.subscription_id
            )
            if subscription and subscription.status == SubscriptionStatus.PAST_DUE:
                await self.subscription_repo.update(
                    subscription.id,
                    SubscriptionUpdateModel(status=SubscriptionStatus.ACTIVE),
                )
        return paid, fully_paid

    @trace_span
    async def register_payment(
        self,
        invoice_id: int,
        amount: Decimal,
        method: PaymentMethod,
        provider_payment_id: Optional[str] = None,
        provider_reference: Optional[str] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[PaymentReceipt]:
        """
        Record money received against an open invoice.

        Partial payments accumulate. The payment insert and the PAID
        transition commit together.
        """
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Payment amount must be greater than 0"
            )

        now = utc_now()
        try:
            async with transaction():
                check = await self._payable(invoice_id, amount)
                if not check.success:
                    return check
                before = check.data

                payment = await self.payment_repo.create(
                    PaymentCreateModel(
                        invoice_id=invoice_id,
                        amount=round_money(amount),
                        currency=before.currency,
                        method=method,
                        status=PaymentStatus.COMPLETED,
                        provider_payment_id=provider_payment_id,
                        provider_reference=provider_reference,
                        received_by=actor,
                        paid_at=now,
                        notes=notes,
                    )
                )
                amount_paid, fully_paid = await self._settle(before, now)
                invoice = await self.invoice_repo.get(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Payment registration", e, invoice_id=invoice_id)

        receipt = PaymentReceipt(
            payment=payment,
            invoice=invoice,
            amount_paid=amount_paid,
            invoice_paid=fully_paid,
        )
        await self._after_payment(AuditAction.PAYMENT_REGISTERED, before, receipt, actor)
        return BillingResult.ok(receipt)

    async def _after_payment(
        self,
        action: AuditAction,
        before: Invoice,
        receipt: PaymentReceipt,
        actor: Optional[str],
    ) -> None:
        logger.info(
            f"Payment {receipt.payment.id} of {receipt.payment.amount} on invoice {receipt.invoice.number}"
            f" (paid {receipt.amount_paid} of {receipt.invoice.total})",
            extra={
                "invoice_id": receipt.invoice.id,
                "payment_id": receipt.payment.id,
                "amount": str(receipt.payment.amount),
                "invoice_paid": receipt.invoice_paid,
            },
        )
        await self.audit.record(
            action,
            PAYMENT_ENTITY,
            receipt.payment.id,
            before={"invoice": before},
            after=receipt,
            actor=actor,
        )
        await self.notifications.notify(
            NotificationType.PAYMENT_RECEIVED,
            receipt.invoice.subscription_id,
            invoice_id=receipt.invoice.id,
            payload={
                "payment_id": receipt.payment.id,
                "amount": str(receipt.payment.amount),
                "currency": receipt.payment.currency,
                "invoice_paid": receipt.invoice_paid,
            },
        )

    @trace_span
    async def record_pending_payment(
        self,
        invoice_id: int,
        amount: Decimal,
        method: PaymentMethod,
        provider_payment_id: Optional[str] = None,
        provider_reference: Optional[str] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[Payment]:
        """Record a payment the provider has not settled yet (e.g. awaiting 3-D Secure)."""
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Payment amount must be greater than 0"
            )

        try:
            async with transaction():
                check = await self._payable(invoice_id, amount)
                if not check.success:
                    return check
                payment = await self.payment_repo.create(
                    PaymentCreateModel(
                        invoice_id=invoice_id,
                        amount=round_money(amount),
                        currency=check.data.currency,
                        method=method,
                        status=PaymentStatus.PENDING,
                        provider_payment_id=provider_payment_id,
                        provider_reference=provider_reference,
                        received_by=actor,
                        notes=notes,
                    )
                )
        except SQLAlchemyError as e:
            return store_failure(logger, "Pending payment", e, invoice_id=invoice_id)

        await self.audit.record(
            AuditAction.PAYMENT_PENDING, PAYMENT_ENTITY, payment.id, after=payment, actor=actor
        )
        return BillingResult.ok(payment)

    @trace_span
    async def confirm_pending_payment(
        self,
        payment_id: int,
        provider_payment_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[PaymentReceipt]:
        """Complete a pending payment once the provider reports it settled."""
        now = utc_now()
        try:
            async with transaction():
                pending = await self.payment_repo.get(payment_id)
                if pending is None:
                    return BillingResult.fail(
                        BillingErrorCode.PAYMENT_NOT_FOUND,
                        f"Payment {payment_id} not found",
                    )
                if pending.status != PaymentStatus.PENDING:
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        f"Payment {payment_id} is {pending.status.value}",
                    )

                # Invoice lock first, same order as register_payment
                check = await self._payable(pending.invoice_id, pending.amount)
                if not check.success:
                    return check
                before = check.data

                if not await self.payment_repo.complete(payment_id, provider_payment_id):
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        f"Payment {payment_id} is no longer pending",
                    )
                amount_paid, fully_paid = await self._settle(before, now)
                payment = await self.payment_repo.get(payment_id)
                invoice = await self.invoice_repo.get(before.id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Payment confirmation", e, payment_id=payment_id)

        receipt = PaymentReceipt(
            payment=payment,
            invoice=invoice,
            amount_paid=amount_paid,
            invoice_paid=fully_paid,
        )
        await self._after_payment(AuditAction.PAYMENT_CONFIRMED, before, receipt, actor)
        return BillingResult.ok(receipt)

    @trace_span
    async def fail_pending_payment(
        self, payment_id: int, reason: str, actor: Optional[str] = None
    ) -> BillingResult[Payment]:
        try:
            async with transaction():
                before = await self.payment_repo.get(payment_id)
                if before is None:
                    return BillingResult.fail(
                        BillingErrorCode.PAYMENT_NOT_FOUND,
                        f"Payment {payment_id} not found",
                    )
                if not await self.payment_repo.fail(payment_id, reason[:500]):
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        f"Payment {payment_id} is {before.status.value}",
                    )
                payment = await self.payment_repo.get(payment_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Payment failure", e, payment_id=payment_id)

        await self.audit.record(
            AuditAction.PAYMENT_FAILED,
            PAYMENT_ENTITY,
            payment_id,
            before=before,
            after=payment,
            actor=actor,
        )
        return BillingResult.ok(payment)

    @trace_span
    async def generate_renewal_invoice(
        self, subscription_id: int, actor: Optional[str] = None
    ) -> BillingResult[InvoiceDetail]:
        """
        Invoice the period that starts where the current one ends.

        Uses the plan's current price for the subscription's cycle and is due
        billing_invoice_due_days after the new period starts. A running
        recurring coupon is re-validated and applied. Calling it again for
        the same period returns the invoice already issued.
        """
        try:
            subscription = await self.subscription_repo.get(subscription_id)
            if subscription is None:
                return BillingResult.fail(
                    BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                    f"Subscription {subscription_id} not found",
                )
            plan = await self.plan_repo.get(subscription.plan_id)
            if plan is None:
                return BillingResult.fail(
                    BillingErrorCode.PLAN_NOT_FOUND,
                    f"Plan {subscription.plan_id} not found",
                )

            period_start = subscription.current_period_end
            existing = await self.invoice_repo.get_for_period(
                subscription_id, period_start
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Renewal invoice lookup", e, subscription_id=subscription_id
            )
        if existing is not None:
            logger.info(
                f"Renewal invoice {existing.number} already issued for subscription {subscription_id}",
                extra={"subscription_id": subscription_id, "invoice_id": existing.id},
            )
            return await self.get_invoice(existing.id)

        cycle = subscription.billing_cycle
        period_end = period_start + relativedelta(months=cycle.months())
        created = await self.create_invoice(
            subscription_id,
            [
                InvoiceItemInput(
                    type=InvoiceItemType.SUBSCRIPTION,
                    description=(
                        f"{plan.display_name} ({cycle.value}) "
                        f"{period_start:%Y-%m-%d} - {period_end:%Y-%m-%d}"
                    ),
                    quantity=Decimal("1"),
                    unit_price=plan.price_for(cycle),
                )
            ],
            currency=plan.currency,
            period_start=period_start,
            period_end=period_end,
            due_date=period_start + timedelta(days=settings.billing_invoice_due_days),
            actor=actor,
        )
        if not created.success:
            return created
        invoice = created.data.invoice

        try:
            active = await self.coupons.get_active_redemption(subscription_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Recurring coupon lookup", e, invoice_id=invoice.id
            )
        if active is not None:
            applied = await self.coupons.apply_coupon_to_invoice(
                invoice.id, active.code, actor=actor
            )
            if not applied.success:
                logger.info(
                    f"Recurring coupon {active.code} not applied to {invoice.number}: {applied.error.message}",
                    extra={
                        "invoice_id": invoice.id,
                        "error_code": applied.error_code.value,
                    },
                )

        opened = await self.open_invoice(invoice.id, actor=actor)
        if not opened.success:
            return opened
        return await self.get_invoice(invoice.id)

    @trace_span
    async def create_plan_change_invoice(
        self,
        subscription_id: int,
        proration: ProrationResult,
        actor: Optional[str] = None,
    ) -> BillingResult[InvoiceDetail]:
        """Invoice the prorated difference of an upgrade, issued immediately."""
        if proration.net_amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                "Only a positive proration net amount can be invoiced",
            )

        items = [
            InvoiceItemInput(
                type=(
                    InvoiceItemType.CREDIT
                    if line.type == ProrationLineType.CREDIT
                    else InvoiceItemType.CHARGE
                ),
                description=line.description,
                quantity=Decimal("1"),
                unit_price=line.amount,
            )
            for line in proration.lines
        ]
        return await self.create_invoice(
            subscription_id,
            items,
            notes="Plan change proration",
            open_immediately=True,
            actor=actor,
        )

    @trace_span
    async def get_invoice(self, invoice_id: int) -> BillingResult[InvoiceDetail]:
        try:
            invoice = await self.invoice_repo.get(invoice_id)
            if invoice is None:
                return _invoice_not_found(invoice_id)
            detail = await self._detail(invoice)
        except SQLAlchemyError as e:
            return store_failure(logger, "Invoice lookup", e, invoice_id=invoice_id)
        return BillingResult.ok(detail)

    @trace_span
    async def list_invoices(
        self,
        subscription_id: int,
        status: Optional[InvoiceStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BillingResult[List[Invoice]]:
        try:
            invoices = await self.invoice_repo.list_for_subscription(
                subscription_id, status, limit=limit, offset=offset
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Invoice listing", e, subscription_id=subscription_id
            )
        return BillingResult.ok(invoices)

    @trace_span
    async def get_amount_paid(self, invoice_id: int) -> BillingResult[Decimal]:
        try:
            if await self.invoice_repo.get(invoice_id) is None:
                return _invoice_not_found(invoice_id)
            paid = await self.payment_repo.sum_completed(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Amount paid lookup", e, invoice_id=invoice_id)
        return BillingResult.ok(paid)
