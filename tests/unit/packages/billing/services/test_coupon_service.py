"""
Unit tests for CouponService.

Covers the eligibility checks in order, redemption against invoices and
coupon administration.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from common.core.clock import utc_now
from packages.billing.models.domain.coupon import CouponCreateModel
from packages.billing.models.domain.enums import (
    DiscountType,
    InvoiceStatus,
    PaymentMethod,
)
from packages.billing.models.domain.results import BillingErrorCode
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.invoice_service import InvoiceService
from tests.factories.billing_factory import BillingFactory


@pytest.fixture
def coupon_service():
    return CouponService()


@pytest.mark.asyncio
class TestValidate:
    """Eligibility checks without redeeming."""

    async def test_percentage_discount(
        self, coupon_service, sample_subscription, percent_coupon
    ):
        result = await coupon_service.validate(
            "SAVE20", sample_subscription.id, Decimal("1000.00")
        )

        assert result.success is True
        assert result.data.discount_amount == Decimal("200.00")
        assert result.data.final_amount == Decimal("800.00")
        assert result.data.coupon.id == percent_coupon.id

    async def test_code_lookup_ignores_case(
        self, coupon_service, sample_subscription, percent_coupon
    ):
        result = await coupon_service.validate(
            " save20 ", sample_subscription.id, Decimal("100.00")
        )

        assert result.success is True

    async def test_fixed_discount_never_exceeds_amount(
        self, coupon_service, test_db, sample_subscription
    ):
        await BillingFactory.create_coupon(
            test_db,
            "BIG1500",
            discount_type=DiscountType.FIXED_AMOUNT.value,
            discount_value=Decimal("1500.00"),
        )

        result = await coupon_service.validate(
            "BIG1500", sample_subscription.id, Decimal("1000.00")
        )

        assert result.data.discount_amount == Decimal("1000.00")
        assert result.data.final_amount == Decimal("0.00")

    async def test_unknown_code(self, coupon_service, sample_subscription):
        result = await coupon_service.validate(
            "NOPE", sample_subscription.id, Decimal("100")
        )

        assert result.error_code == BillingErrorCode.COUPON_NOT_FOUND

    async def test_unknown_subscription(self, coupon_service, percent_coupon):
        result = await coupon_service.validate("SAVE20", 999999, Decimal("100"))

        assert result.error_code == BillingErrorCode.SUBSCRIPTION_NOT_FOUND

    async def test_negative_amount(
        self, coupon_service, sample_subscription, percent_coupon
    ):
        result = await coupon_service.validate(
            "SAVE20", sample_subscription.id, Decimal("-1")
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    @pytest.mark.parametrize(
        "overrides, expected",
        [
            ({"is_active": False}, BillingErrorCode.COUPON_INACTIVE),
            (
                {"valid_from": utc_now() + timedelta(days=5)},
                BillingErrorCode.COUPON_NOT_YET_VALID,
            ),
            (
                {"valid_until": utc_now() - timedelta(days=1)},
                BillingErrorCode.COUPON_EXPIRED,
            ),
            ({"max_uses": 3, "current_uses": 3}, BillingErrorCode.COUPON_EXHAUSTED),
            (
                {"applicable_billing_cycles": ["annual"]},
                BillingErrorCode.COUPON_NOT_APPLICABLE,
            ),
            (
                {"min_amount": Decimal("5000.00")},
                BillingErrorCode.MINIMUM_AMOUNT_NOT_MET,
            ),
        ],
    )
    async def test_rejections(
        self, coupon_service, test_db, sample_subscription, overrides, expected
    ):
        await BillingFactory.create_coupon(test_db, "PROMO", **overrides)

        result = await coupon_service.validate(
            "PROMO", sample_subscription.id, Decimal("1000.00")
        )

        assert result.success is False
        assert result.error_code == expected

    async def test_restricted_to_other_plan(
        self, coupon_service, test_db, sample_subscription, premium_plan
    ):
        await BillingFactory.create_coupon(
            test_db, "PREMIUMONLY", applicable_plan_ids=[premium_plan.id]
        )

        result = await coupon_service.validate(
            "PREMIUMONLY", sample_subscription.id, Decimal("1000.00")
        )

        assert result.error_code == BillingErrorCode.COUPON_NOT_APPLICABLE

    async def test_inactive_is_reported_before_expiry(
        self, coupon_service, test_db, sample_subscription
    ):
        await BillingFactory.create_coupon(
            test_db,
            "OLD",
            is_active=False,
            valid_until=utc_now() - timedelta(days=1),
        )

        result = await coupon_service.validate(
            "OLD", sample_subscription.id, Decimal("1000.00")
        )

        assert result.error_code == BillingErrorCode.COUPON_INACTIVE

    async def test_first_payment_only(
        self, coupon_service, test_db, sample_subscription
    ):
        await BillingFactory.create_coupon(test_db, "WELCOME", first_payment_only=True)
        await BillingFactory.create_invoice(
            test_db, sample_subscription, "INV-202401-0009", status=InvoiceStatus.PAID
        )

        result = await coupon_service.validate(
            "WELCOME", sample_subscription.id, Decimal("1000.00")
        )

        assert result.error_code == BillingErrorCode.FIRST_PAYMENT_ONLY

    async def test_first_payment_only_without_paid_invoices(
        self, coupon_service, test_db, sample_subscription
    ):
        await BillingFactory.create_coupon(test_db, "WELCOME", first_payment_only=True)

        result = await coupon_service.validate(
            "WELCOME", sample_subscription.id, Decimal("1000.00")
        )

        assert result.success is True


@pytest.mark.asyncio
class TestApplyCouponToInvoice:
    """Redemption against invoices."""

    async def test_recomputes_totals_on_discounted_base(
        self, coupon_service, open_invoice, percent_coupon
    ):
        result = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "SAVE20")

        assert result.success is True
        assert result.data.subtotal == Decimal("1000.00")
        assert result.data.discount == Decimal("200.00")
        assert result.data.tax == Decimal("168.00")
        assert result.data.total == Decimal("968.00")
        assert result.data.coupon_id == percent_coupon.id

        coupon = await coupon_service.get_coupon("SAVE20")
        assert coupon.data.current_uses == 1

    async def test_draft_invoice_accepts_coupon(
        self, coupon_service, draft_invoice, percent_coupon
    ):
        result = await coupon_service.apply_coupon_to_invoice(draft_invoice.id, "SAVE20")

        assert result.success is True
        assert result.data.status == InvoiceStatus.DRAFT

    async def test_one_coupon_per_invoice(
        self, coupon_service, test_db, open_invoice, percent_coupon
    ):
        await BillingFactory.create_coupon(test_db, "EXTRA10", discount_value=Decimal("10"))
        await coupon_service.apply_coupon_to_invoice(open_invoice.id, "SAVE20")

        result = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "EXTRA10")

        assert result.error_code == BillingErrorCode.ALREADY_EXISTS

    async def test_one_time_coupon_cannot_be_reused(
        self, coupon_service, open_invoice, draft_invoice, percent_coupon
    ):
        await coupon_service.apply_coupon_to_invoice(open_invoice.id, "SAVE20")

        result = await coupon_service.apply_coupon_to_invoice(draft_invoice.id, "SAVE20")

        assert result.error_code == BillingErrorCode.COUPON_ALREADY_USED

    async def test_paid_invoice_is_not_editable(
        self, coupon_service, test_db, sample_subscription, percent_coupon
    ):
        paid = await BillingFactory.create_invoice(
            test_db, sample_subscription, "INV-202401-0010", status=InvoiceStatus.PAID
        )

        result = await coupon_service.apply_coupon_to_invoice(paid.id, "SAVE20")

        assert result.error_code == BillingErrorCode.INVALID_STATE

    async def test_unknown_invoice(self, coupon_service, percent_coupon):
        result = await coupon_service.apply_coupon_to_invoice(999999, "SAVE20")

        assert result.error_code == BillingErrorCode.INVOICE_NOT_FOUND

    async def test_failed_validation_changes_nothing(
        self, coupon_service, test_db, open_invoice
    ):
        await BillingFactory.create_coupon(test_db, "BIGSPEND", min_amount=Decimal("5000"))

        result = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "BIGSPEND")

        assert result.error_code == BillingErrorCode.MINIMUM_AMOUNT_NOT_MET
        coupon = await coupon_service.get_coupon("BIGSPEND")
        assert coupon.data.current_uses == 0

    async def test_usage_limit_is_shared_across_subscriptions(
        self, coupon_service, test_db, sample_plan, open_invoice
    ):
        await BillingFactory.create_coupon(test_db, "ONCE", max_uses=1)
        other = await BillingFactory.create_subscription(test_db, sample_plan, owner_id=3)
        other_invoice = await BillingFactory.create_invoice(
            test_db, other, "INV-202401-0011"
        )

        first = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "ONCE")
        second = await coupon_service.apply_coupon_to_invoice(other_invoice.id, "ONCE")

        assert first.success is True
        assert second.error_code == BillingErrorCode.COUPON_EXHAUSTED

    async def test_payments_above_discounted_total_block_coupon(
        self, coupon_service, open_invoice, percent_coupon
    ):
        await InvoiceService().register_payment(
            open_invoice.id, Decimal("1000.00"), PaymentMethod.CASH
        )

        result = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "SAVE20")

        assert result.error_code == BillingErrorCode.AMOUNT_EXCEEDS_BALANCE

    async def test_coupon_settling_balance_marks_invoice_paid(
        self, coupon_service, open_invoice, percent_coupon
    ):
        await InvoiceService().register_payment(
            open_invoice.id, Decimal("968.00"), PaymentMethod.CASH
        )

        result = await coupon_service.apply_coupon_to_invoice(open_invoice.id, "SAVE20")

        assert result.data.status == InvoiceStatus.PAID
        assert result.data.paid_at is not None


@pytest.mark.asyncio
class TestRecurringCoupons:
    """Coupons with duration_months keep applying to later invoices."""

    async def test_redemption_window_and_reapplication(
        self, coupon_service, test_db, sample_subscription, open_invoice, draft_invoice
    ):
        await BillingFactory.create_coupon(test_db, "THREEMONTHS", duration_months=3)
        now = utc_now()

        first = await coupon_service.apply_coupon_to_invoice(
            open_invoice.id, "THREEMONTHS", now=now
        )
        second = await coupon_service.apply_coupon_to_invoice(
            draft_invoice.id, "THREEMONTHS", now=now + timedelta(days=30)
        )

        assert first.success is True
        assert second.success is True
        active = await coupon_service.get_active_redemption(sample_subscription.id)
        assert active.code == "THREEMONTHS"
        assert active.applied_count == 2
        assert active.valid_until == now + relativedelta(months=3)

    async def test_expired_window(
        self, coupon_service, test_db, sample_subscription, open_invoice
    ):
        await BillingFactory.create_coupon(test_db, "TWOMONTHS", duration_months=2)
        now = utc_now()
        await coupon_service.apply_coupon_to_invoice(open_invoice.id, "TWOMONTHS", now=now)

        result = await coupon_service.validate(
            "TWOMONTHS",
            sample_subscription.id,
            Decimal("1000.00"),
            now=now + relativedelta(months=3),
        )

        assert result.error_code == BillingErrorCode.COUPON_EXPIRED
        assert (
            await coupon_service.get_active_redemption(
                sample_subscription.id, now=now + relativedelta(months=3)
            )
            is None
        )

    async def test_per_subscription_limit(
        self, coupon_service, test_db, sample_subscription, open_invoice
    ):
        await BillingFactory.create_coupon(
            test_db, "TWICE", duration_months=12, max_uses_per_user=2
        )
        await coupon_service.apply_coupon_to_invoice(open_invoice.id, "TWICE")

        active = await coupon_service.get_active_redemption(sample_subscription.id)
        assert active.remaining_uses == 1

        await BillingFactory.create_coupon(
            test_db, "ONCEEACH", duration_months=12, max_uses_per_user=1
        )
        draft = await BillingFactory.create_invoice(
            test_db, sample_subscription, "INV-202401-0012", status=InvoiceStatus.DRAFT
        )
        await coupon_service.apply_coupon_to_invoice(draft.id, "ONCEEACH")

        result = await coupon_service.validate(
            "ONCEEACH", sample_subscription.id, Decimal("1000.00")
        )
        assert result.error_code == BillingErrorCode.COUPON_ALREADY_USED


@pytest.mark.asyncio
class TestCouponAdministration:
    async def test_create_normalises_code(self, coupon_service):
        result = await coupon_service.create_coupon(
            CouponCreateModel(
                code=" welcome10 ",
                name="Welcome",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("10"),
            ),
            actor="admin",
        )

        assert result.success is True
        assert result.data.code == "WELCOME10"
        assert result.data.current_uses == 0

    async def test_duplicate_code(self, coupon_service, percent_coupon):
        result = await coupon_service.create_coupon(
            CouponCreateModel(
                code="save20",
                name="Duplicate",
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("50"),
            )
        )

        assert result.error_code == BillingErrorCode.ALREADY_EXISTS

    async def test_deactivate_blocks_new_redemptions(
        self, coupon_service, sample_subscription, percent_coupon
    ):
        deactivated = await coupon_service.deactivate_coupon("SAVE20")

        assert deactivated.data.is_active is False
        result = await coupon_service.validate(
            "SAVE20", sample_subscription.id, Decimal("1000.00")
        )
        assert result.error_code == BillingErrorCode.COUPON_INACTIVE

    async def test_deactivate_unknown(self, coupon_service):
        result = await coupon_service.deactivate_coupon("MISSING")

        assert result.error_code == BillingErrorCode.COUPON_NOT_FOUND

    async def test_deactivate_store_failure(self, coupon_service, percent_coupon):
        with patch.object(
            coupon_service.coupon_repo,
            "set_active",
            AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("db down"))),
        ):
            result = await coupon_service.deactivate_coupon("SAVE20")

        assert result.error_code == BillingErrorCode.INTERNAL_ERROR
        still_active = await coupon_service.get_coupon("SAVE20")
        assert still_active.data.is_active is True

    async def test_lookup_store_failure(self, coupon_service):
        with patch.object(
            coupon_service.coupon_repo,
            "get_by_code",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down"))),
        ):
            result = await coupon_service.get_coupon("SAVE20")

        assert result.error_code == BillingErrorCode.INTERNAL_ERROR


class TestCouponCreateModel:
    def test_rejects_percentage_over_100(self):
        with pytest.raises(ValidationError):
            CouponCreateModel(
                code="TOOMUCH",
                name="Too much",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("150"),
            )

    def test_rejects_window_ending_before_it_starts(self):
        with pytest.raises(ValidationError):
            CouponCreateModel(
                code="BACKWARDS",
                name="Backwards",
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("10"),
                valid_from=utc_now(),
                valid_until=utc_now() - timedelta(days=1),
            )
