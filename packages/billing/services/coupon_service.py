"""
Coupon engine: validation, redemption and administration of discount coupons.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.core.clock import utc_now
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.coupon import (
    ActiveCoupon,
    Coupon,
    CouponCreateModel,
    CouponRedemption,
    CouponValidation,
)
from packages.billing.models.domain.enums import InvoiceStatus
from packages.billing.models.domain.invoice import Invoice, InvoiceTotals
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.models.domain.subscription import Subscription
from packages.billing.repositories.coupon_repository import (
    CouponRedemptionRepository,
    CouponRepository,
)
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.payment_repository import PaymentRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.errors import store_failure

logger = get_logger(__name__)


def check_coupon(
    coupon: Optional[Coupon],
    subscription: Subscription,
    amount: Decimal,
    redemption: Optional[CouponRedemption],
    has_paid_invoice: bool,
    now: datetime,
) -> Optional[BillingResult]:
    """
    Run the eligibility checks in order and stop at the first failure.

    A recurring discount already granted to the subscription and still
    inside its redemption window skips the active flag and the coupon's own
    validity window: deactivating or expiring a coupon only stops new
    redemptions.

    Returns:
        The failure result, or None if the coupon may be applied
    """
    if coupon is None:
        return BillingResult.fail(BillingErrorCode.COUPON_NOT_FOUND, "Coupon not found")

    granted = (
        redemption is not None
        and coupon.is_recurring
        and redemption.expires_at is not None
        and now < redemption.expires_at
    )

    if not granted:
        if not coupon.is_active:
            return BillingResult.fail(
                BillingErrorCode.COUPON_INACTIVE, f"Coupon {coupon.code} is not active"
            )

        if coupon.valid_from and now < coupon.valid_from:
            return BillingResult.fail(
                BillingErrorCode.COUPON_NOT_YET_VALID,
                f"Coupon {coupon.code} is valid from {coupon.valid_from:%Y-%m-%d}",
            )
        if coupon.valid_until and now > coupon.valid_until:
            return BillingResult.fail(
                BillingErrorCode.COUPON_EXPIRED, f"Coupon {coupon.code} has expired"
            )

    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return BillingResult.fail(
            BillingErrorCode.COUPON_EXHAUSTED,
            f"Coupon {coupon.code} has reached its usage limit",
        )

    if coupon.applicable_plan_ids and subscription.plan_id not in coupon.applicable_plan_ids:
        return BillingResult.fail(
            BillingErrorCode.COUPON_NOT_APPLICABLE,
            f"Coupon {coupon.code} does not apply to this plan",
        )

    if (
        coupon.applicable_billing_cycles
        and subscription.billing_cycle not in coupon.applicable_billing_cycles
    ):
        return BillingResult.fail(
            BillingErrorCode.COUPON_NOT_APPLICABLE,
            f"Coupon {coupon.code} does not apply to {subscription.billing_cycle.value} billing",
        )

    if coupon.min_amount is not None and amount < coupon.min_amount:
        return BillingResult.fail(
            BillingErrorCode.MINIMUM_AMOUNT_NOT_MET,
            f"Coupon {coupon.code} requires a minimum amount of {round_money(coupon.min_amount)}",
        )

    if redemption is not None:
        if not coupon.is_recurring:
            return BillingResult.fail(
                BillingErrorCode.COUPON_ALREADY_USED,
                f"Coupon {coupon.code} was already used by this subscription",
            )
        if redemption.expires_at is None or now >= redemption.expires_at:
            return BillingResult.fail(
                BillingErrorCode.COUPON_EXPIRED,
                f"Coupon {coupon.code} discount period has ended",
            )
        if (
            coupon.max_uses_per_user is not None
            and redemption.applied_count >= coupon.max_uses_per_user
        ):
            return BillingResult.fail(
                BillingErrorCode.COUPON_ALREADY_USED,
                f"Coupon {coupon.code} was applied the maximum number of times",
            )

    if coupon.first_payment_only and has_paid_invoice:
        return BillingResult.fail(
            BillingErrorCode.FIRST_PAYMENT_ONLY,
            f"Coupon {coupon.code} is only valid for the first payment",
        )

    return None


class CouponService:
    """Service for validating and redeeming coupons."""

    def __init__(self):
        self.coupon_repo = CouponRepository()
        self.redemption_repo = CouponRedemptionRepository()
        self.subscription_repo = SubscriptionRepository()
        self.invoice_repo = InvoiceRepository()
        self.payment_repo = PaymentRepository()
        self.audit = AuditService()

    async def _validate(
        self,
        code: str,
        subscription_id: int,
        amount: Decimal,
        now: datetime,
        lock_redemption: bool = False,
    ) -> BillingResult[CouponValidation]:
        if amount < 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Amount cannot be negative"
            )

        subscription = await self.subscription_repo.get(subscription_id)
        if subscription is None:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                f"Subscription {subscription_id} not found",
            )

        coupon = await self.coupon_repo.get_by_code(code)
        redemption = None
        has_paid = False
        if coupon is not None:
            redemption = await self.redemption_repo.get_for_subscription(
                coupon.id, subscription_id, for_update=lock_redemption
            )
            if coupon.first_payment_only:
                has_paid = await self.invoice_repo.has_paid_invoice(subscription_id)

        failure = check_coupon(coupon, subscription, amount, redemption, has_paid, now)
        if failure is not None:
            return failure

        discount = coupon.discount_for(amount)
        return BillingResult.ok(
            CouponValidation(
                coupon=coupon,
                amount=round_money(amount),
                discount_amount=discount,
                final_amount=round_money(amount - discount),
            )
        )

    @trace_span
    async def validate(
        self,
        code: str,
        subscription_id: int,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> BillingResult[CouponValidation]:
        """Check a coupon without redeeming it."""
        try:
            return await self._validate(code, subscription_id, amount, now or utc_now())
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Coupon validation", e, subscription_id=subscription_id
            )

    @trace_span
    async def apply_coupon_to_invoice(
        self,
        invoice_id: int,
        code: str,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BillingResult[Invoice]:
        """
        Redeem a coupon against an unpaid invoice.

        The discount is computed on the subtotal and tax is recomputed on the
        discounted base. The redemption, the coupon's use counter and the
        invoice totals are written in one transaction.
        """
        now = now or utc_now()
        try:
            async with transaction():
                invoice = await self.invoice_repo.get_for_update(invoice_id)
                if invoice is None:
                    return BillingResult.fail(
                        BillingErrorCode.INVOICE_NOT_FOUND,
                        f"Invoice {invoice_id} not found",
                    )
                if not invoice.status.is_editable():
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        f"Cannot apply a coupon to a {invoice.status.value} invoice",
                    )
                if invoice.coupon_id is not None:
                    return BillingResult.fail(
                        BillingErrorCode.ALREADY_EXISTS,
                        f"Invoice {invoice.number} already has a coupon",
                    )

                validation = await self._validate(
                    code,
                    invoice.subscription_id,
                    invoice.subtotal,
                    now,
                    lock_redemption=True,
                )
                if not validation.success:
                    return validation
                coupon = validation.data.coupon

                totals = InvoiceTotals.compute(
                    invoice.subtotal, invoice.tax_rate, validation.data.discount_amount
                )
                amount_paid = await self.payment_repo.sum_completed(invoice_id)
                if amount_paid > totals.total:
                    return BillingResult.fail(
                        BillingErrorCode.AMOUNT_EXCEEDS_BALANCE,
                        f"Invoice already has {amount_paid} paid, more than the discounted total {totals.total}",
                    )

                if not await self.coupon_repo.increment_uses(coupon.id):
                    return BillingResult.fail(
                        BillingErrorCode.COUPON_EXHAUSTED,
                        f"Coupon {coupon.code} has reached its usage limit",
                    )

                redemption = await self.redemption_repo.get_for_subscription(
                    coupon.id, invoice.subscription_id
                )
                if redemption is not None:
                    await self.redemption_repo.record_reapplied(redemption.id, invoice_id)
                else:
                    expires_at = (
                        now + relativedelta(months=coupon.duration_months)
                        if coupon.is_recurring
                        else None
                    )
                    await self.redemption_repo.record_first(
                        coupon.id, invoice.subscription_id, invoice_id, expires_at
                    )

                updated = await self.invoice_repo.set_fields(
                    invoice_id,
                    coupon_id=coupon.id,
                    discount=totals.discount,
                    tax=totals.tax,
                    total=totals.total,
                )
                if (
                    invoice.status == InvoiceStatus.OPEN
                    and amount_paid > 0
                    and amount_paid >= totals.total
                ):
                    await self.invoice_repo.transition(
                        invoice_id, [InvoiceStatus.OPEN], InvoiceStatus.PAID, paid_at=now
                    )
                    updated = await self.invoice_repo.get(invoice_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Coupon redemption", e, invoice_id=invoice_id, coupon_code=code
            )

        logger.info(
            f"Applied coupon {coupon.code} to invoice {invoice.number}: discount {totals.discount}",
            extra={
                "invoice_id": invoice_id,
                "coupon_id": coupon.id,
                "discount": str(totals.discount),
            },
        )
        await self.audit.record(
            AuditAction.COUPON_APPLIED,
            "invoice",
            invoice_id,
            before=invoice,
            after=updated,
            actor=actor,
        )
        return BillingResult.ok(updated)

    @trace_span
    async def create_coupon(
        self, coupon_data: CouponCreateModel, actor: Optional[str] = None
    ) -> BillingResult[Coupon]:
        try:
            if await self.coupon_repo.get_by_code(coupon_data.code):
                return BillingResult.fail(
                    BillingErrorCode.ALREADY_EXISTS,
                    f"Coupon {coupon_data.code} already exists",
                )
            coupon = await self.coupon_repo.create(coupon_data)
        except IntegrityError:
            return BillingResult.fail(
                BillingErrorCode.ALREADY_EXISTS,
                f"Coupon {coupon_data.code} already exists",
            )
        except SQLAlchemyError as e:
            return store_failure(logger, "Coupon creation", e, coupon_code=coupon_data.code)

        logger.info(
            f"Created coupon {coupon.code}",
            extra={"coupon_id": coupon.id, "coupon_code": coupon.code},
        )
        await self.audit.record(
            AuditAction.COUPON_CREATED, "coupon", coupon.id, after=coupon, actor=actor
        )
        return BillingResult.ok(coupon)

    @trace_span
    async def deactivate_coupon(
        self, code: str, actor: Optional[str] = None
    ) -> BillingResult[Coupon]:
        """Stop new redemptions. Recurring discounts already granted keep running."""
        try:
            coupon = await self.coupon_repo.get_by_code(code)
            if coupon is None:
                return BillingResult.fail(
                    BillingErrorCode.COUPON_NOT_FOUND, "Coupon not found"
                )
            updated = await self.coupon_repo.set_active(coupon.id, False)
        except SQLAlchemyError as e:
            return store_failure(logger, "Coupon deactivation", e, code=code)
        await self.audit.record(
            AuditAction.COUPON_DEACTIVATED,
            "coupon",
            coupon.id,
            before=coupon,
            after=updated,
            actor=actor,
        )
        return BillingResult.ok(updated)

    @trace_span
    async def get_coupon(self, code: str) -> BillingResult[Coupon]:
        try:
            coupon = await self.coupon_repo.get_by_code(code)
        except SQLAlchemyError as e:
            return store_failure(logger, "Coupon lookup", e, code=code)
        if coupon is None:
            return BillingResult.fail(BillingErrorCode.COUPON_NOT_FOUND, "Coupon not found")
        return BillingResult.ok(coupon)

    @trace_span
    async def get_active_redemption(
        self, subscription_id: int, now: Optional[datetime] = None
    ) -> Optional[ActiveCoupon]:
        """Recurring discount still running for a subscription, if any."""
        redemption = await self.redemption_repo.get_active_recurring(
            subscription_id, now or utc_now()
        )
        if redemption is None:
            return None
        coupon = await self.coupon_repo.get(redemption.coupon_id)
        if coupon is None:
            return None

        remaining = None
        if coupon.max_uses_per_user is not None:
            remaining = max(0, coupon.max_uses_per_user - redemption.applied_count)
        return ActiveCoupon(
            code=coupon.code,
            name=coupon.name,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            applied_count=redemption.applied_count,
            remaining_uses=remaining,
            valid_until=redemption.expires_at,
        )
