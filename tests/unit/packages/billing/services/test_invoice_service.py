"""
Unit tests for InvoiceService.

Covers invoice creation, state transitions, payments and renewal invoicing.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import OperationalError

from common.core.clock import utc_now
from packages.billing.models.domain.enums import (
    InvoiceItemType,
    InvoiceStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    ProrationLineType,
    SubscriptionStatus,
)
from packages.billing.models.domain.invoice import InvoiceItemInput
from packages.billing.models.domain.proration import ProrationLine, ProrationResult
from packages.billing.models.domain.results import BillingErrorCode
from packages.billing.repositories.invoice_repository import invoice_number_prefix
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.invoice_service import InvoiceService
from tests.factories.billing_factory import BillingFactory


@pytest.fixture
def invoice_service(notification_service):
    return InvoiceService(notification_service=notification_service)


def setup_fee(amount: str = "1000.00") -> InvoiceItemInput:
    return InvoiceItemInput(
        type=InvoiceItemType.CHARGE, description="Setup fee", unit_price=Decimal(amount)
    )


def sent_types(sender):
    return [call.args[0].type for call in sender.send.call_args_list]


@pytest.mark.asyncio
class TestCreateInvoice:
    """Tests for creating invoices."""

    async def test_creates_draft_with_totals(
        self, invoice_service, sample_subscription, mock_notification_sender
    ):
        result = await invoice_service.create_invoice(
            sample_subscription.id, [setup_fee()]
        )

        assert result.success is True
        invoice = result.data.invoice
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("1000.00")
        assert invoice.tax_rate == Decimal("21")
        assert invoice.tax == Decimal("210.00")
        assert invoice.total == Decimal("1210.00")
        assert invoice.discount == Decimal("0")
        assert invoice.currency == "ARS"
        assert invoice.opened_at is None
        assert invoice.plan_snapshot["name"] == "basic"
        assert len(result.data.items) == 1
        assert result.data.amount_paid == Decimal("0")
        mock_notification_sender.send.assert_not_awaited()

    async def test_numbers_are_sequential_per_month(
        self, invoice_service, sample_subscription
    ):
        prefix = invoice_number_prefix(utc_now())

        first = await invoice_service.create_invoice(sample_subscription.id, [setup_fee()])
        second = await invoice_service.create_invoice(sample_subscription.id, [setup_fee()])

        assert first.data.invoice.number == f"{prefix}0001"
        assert second.data.invoice.number == f"{prefix}0002"

    async def test_multiple_lines_and_custom_tax(
        self, invoice_service, sample_subscription
    ):
        items = [
            InvoiceItemInput(
                type=InvoiceItemType.TOKENS,
                description="Token pack",
                quantity=Decimal("3"),
                unit_price=Decimal("99.99"),
            ),
            InvoiceItemInput(
                type=InvoiceItemType.CREDIT,
                description="Goodwill credit",
                unit_price=Decimal("-49.97"),
            ),
        ]

        result = await invoice_service.create_invoice(
            sample_subscription.id, items, tax_rate=Decimal("10.5")
        )

        invoice = result.data.invoice
        assert invoice.subtotal == Decimal("250.00")
        assert invoice.tax == Decimal("26.25")
        assert invoice.total == Decimal("276.25")
        assert [item.position for item in result.data.items] == [1, 2]
        assert result.data.items[0].line_total == Decimal("299.97")

    async def test_open_immediately_sends_invoice_created(
        self, invoice_service, sample_subscription, mock_notification_sender
    ):
        result = await invoice_service.create_invoice(
            sample_subscription.id, [setup_fee()], open_immediately=True
        )

        assert result.data.invoice.status == InvoiceStatus.OPEN
        assert result.data.invoice.opened_at is not None
        assert sent_types(mock_notification_sender) == [NotificationType.INVOICE_CREATED]
        notification = mock_notification_sender.send.call_args.args[0]
        assert notification.invoice_id == result.data.invoice.id
        assert notification.payload["total"] == "1210.00"

    async def test_default_due_date(self, invoice_service, sample_subscription):
        before = utc_now()

        result = await invoice_service.create_invoice(sample_subscription.id, [setup_fee()])

        due_date = result.data.invoice.due_date
        assert before + timedelta(days=15) <= due_date <= utc_now() + timedelta(days=15)

    async def test_requires_items(self, invoice_service, sample_subscription):
        result = await invoice_service.create_invoice(sample_subscription.id, [])

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_rejects_tax_rate_out_of_range(
        self, invoice_service, sample_subscription
    ):
        result = await invoice_service.create_invoice(
            sample_subscription.id, [setup_fee()], tax_rate=Decimal("101")
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_rejects_negative_subtotal(self, invoice_service, sample_subscription):
        result = await invoice_service.create_invoice(
            sample_subscription.id, [setup_fee("-10.00")]
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_rejects_inverted_period(self, invoice_service, sample_subscription):
        now = utc_now()

        result = await invoice_service.create_invoice(
            sample_subscription.id,
            [setup_fee()],
            period_start=now,
            period_end=now - timedelta(days=1),
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_unknown_subscription(self, invoice_service):
        result = await invoice_service.create_invoice(999999, [setup_fee()])

        assert result.error_code == BillingErrorCode.SUBSCRIPTION_NOT_FOUND


@pytest.mark.asyncio
class TestInvoiceTransitions:
    """Open, void and uncollectible."""

    async def test_open_draft(
        self, invoice_service, draft_invoice, mock_notification_sender
    ):
        result = await invoice_service.open_invoice(draft_invoice.id)

        assert result.success is True
        assert result.data.status == InvoiceStatus.OPEN
        assert result.data.opened_at is not None
        assert sent_types(mock_notification_sender) == [NotificationType.INVOICE_CREATED]

    async def test_open_twice_is_invalid(self, invoice_service, draft_invoice):
        await invoice_service.open_invoice(draft_invoice.id)

        result = await invoice_service.open_invoice(draft_invoice.id)

        assert result.error_code == BillingErrorCode.INVALID_STATE

    async def test_open_unknown_invoice(self, invoice_service):
        result = await invoice_service.open_invoice(999999)

        assert result.error_code == BillingErrorCode.INVOICE_NOT_FOUND

    async def test_void_open_invoice(self, invoice_service, open_invoice):
        result = await invoice_service.void_invoice(open_invoice.id, "Issued by mistake")

        assert result.success is True
        assert result.data.status == InvoiceStatus.VOID
        assert result.data.void_reason == "Issued by mistake"
        assert result.data.voided_at is not None

    async def test_void_draft_invoice(self, invoice_service, draft_invoice):
        result = await invoice_service.void_invoice(draft_invoice.id, "Not needed")

        assert result.data.status == InvoiceStatus.VOID

    async def test_void_requires_reason(self, invoice_service, open_invoice):
        result = await invoice_service.void_invoice(open_invoice.id, "  ")

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_paid_invoice_cannot_be_voided(self, invoice_service, open_invoice):
        await invoice_service.register_payment(
            open_invoice.id, Decimal("1210.00"), PaymentMethod.TRANSFER
        )

        result = await invoice_service.void_invoice(open_invoice.id, "Too late")

        assert result.error_code == BillingErrorCode.INVALID_STATE
        assert "credit note" in result.error.message

    async def test_void_fails_pending_payments(self, invoice_service, open_invoice):
        pending = await invoice_service.record_pending_payment(
            open_invoice.id, Decimal("1210.00"), PaymentMethod.STRIPE
        )

        await invoice_service.void_invoice(open_invoice.id, "Customer left")

        detail = await invoice_service.get_invoice(open_invoice.id)
        (payment,) = detail.data.payments
        assert payment.id == pending.data.id
        assert payment.status == PaymentStatus.FAILED
        assert "Customer left" in payment.failure_reason

    async def test_mark_uncollectible(self, invoice_service, open_invoice):
        result = await invoice_service.mark_uncollectible(open_invoice.id)

        assert result.data.status == InvoiceStatus.UNCOLLECTIBLE

    async def test_draft_cannot_be_uncollectible(self, invoice_service, draft_invoice):
        result = await invoice_service.mark_uncollectible(draft_invoice.id)

        assert result.error_code == BillingErrorCode.INVALID_STATE


@pytest.mark.asyncio
class TestRegisterPayment:
    """Tests for completed payments."""

    async def test_partial_then_full_payment(
        self, invoice_service, open_invoice, mock_notification_sender
    ):
        partial = await invoice_service.register_payment(
            open_invoice.id, Decimal("500.00"), PaymentMethod.CASH, actor="cashier"
        )

        assert partial.success is True
        assert partial.data.amount_paid == Decimal("500.00")
        assert partial.data.invoice_paid is False
        assert partial.data.invoice.status == InvoiceStatus.OPEN
        assert partial.data.payment.received_by == "cashier"

        rest = await invoice_service.register_payment(
            open_invoice.id, Decimal("710.00"), PaymentMethod.TRANSFER
        )

        assert rest.data.amount_paid == Decimal("1210.00")
        assert rest.data.invoice_paid is True
        assert rest.data.invoice.status == InvoiceStatus.PAID
        assert rest.data.invoice.paid_at is not None
        assert sent_types(mock_notification_sender) == [
            NotificationType.PAYMENT_RECEIVED,
            NotificationType.PAYMENT_RECEIVED,
        ]

    async def test_overpayment_is_rejected(self, invoice_service, open_invoice):
        await invoice_service.register_payment(
            open_invoice.id, Decimal("1000.00"), PaymentMethod.CASH
        )

        result = await invoice_service.register_payment(
            open_invoice.id, Decimal("210.01"), PaymentMethod.CASH
        )

        assert result.error_code == BillingErrorCode.AMOUNT_EXCEEDS_BALANCE
        paid = await invoice_service.get_amount_paid(open_invoice.id)
        assert paid.data == Decimal("1000.00")

    async def test_draft_invoice_does_not_accept_payments(
        self, invoice_service, draft_invoice
    ):
        result = await invoice_service.register_payment(
            draft_invoice.id, Decimal("10.00"), PaymentMethod.CASH
        )

        assert result.error_code == BillingErrorCode.INVALID_STATE

    async def test_rejects_non_positive_amount(self, invoice_service, open_invoice):
        result = await invoice_service.register_payment(
            open_invoice.id, Decimal("0"), PaymentMethod.CASH
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_full_payment_reactivates_past_due_subscription(
        self, invoice_service, test_db, sample_plan
    ):
        subscription = await BillingFactory.create_subscription(
            test_db, sample_plan, owner_id=3, status=SubscriptionStatus.PAST_DUE
        )
        invoice = await BillingFactory.create_invoice(
            test_db, subscription, "INV-202401-0003"
        )

        await invoice_service.register_payment(
            invoice.id, Decimal("1210.00"), PaymentMethod.TRANSFER
        )

        refreshed = await SubscriptionRepository().get(subscription.id)
        assert refreshed.status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
class TestPendingPayments:
    """Payments awaiting provider confirmation."""

    async def test_pending_payment_does_not_count_as_paid(
        self, invoice_service, open_invoice
    ):
        result = await invoice_service.record_pending_payment(
            open_invoice.id,
            Decimal("1210.00"),
            PaymentMethod.STRIPE,
            provider_payment_id="pi_123",
        )

        assert result.data.status == PaymentStatus.PENDING
        assert result.data.paid_at is None
        paid = await invoice_service.get_amount_paid(open_invoice.id)
        assert paid.data == Decimal("0")

    async def test_confirm_settles_invoice(self, invoice_service, open_invoice):
        pending = await invoice_service.record_pending_payment(
            open_invoice.id, Decimal("1210.00"), PaymentMethod.STRIPE
        )

        result = await invoice_service.confirm_pending_payment(
            pending.data.id, provider_payment_id="pi_456"
        )

        assert result.success is True
        assert result.data.payment.status == PaymentStatus.COMPLETED
        assert result.data.payment.provider_payment_id == "pi_456"
        assert result.data.invoice_paid is True
        assert result.data.invoice.status == InvoiceStatus.PAID

    async def test_confirm_twice_is_invalid(self, invoice_service, open_invoice):
        pending = await invoice_service.record_pending_payment(
            open_invoice.id, Decimal("100.00"), PaymentMethod.STRIPE
        )
        await invoice_service.confirm_pending_payment(pending.data.id)

        result = await invoice_service.confirm_pending_payment(pending.data.id)

        assert result.error_code == BillingErrorCode.INVALID_STATE

    async def test_fail_pending(self, invoice_service, open_invoice):
        pending = await invoice_service.record_pending_payment(
            open_invoice.id, Decimal("1210.00"), PaymentMethod.MERCADOPAGO
        )

        result = await invoice_service.fail_pending_payment(
            pending.data.id, "3DS abandoned"
        )

        assert result.data.status == PaymentStatus.FAILED
        assert result.data.failure_reason == "3DS abandoned"

    async def test_unknown_payment(self, invoice_service):
        confirm = await invoice_service.confirm_pending_payment(999999)
        fail = await invoice_service.fail_pending_payment(999999, "gone")

        assert confirm.error_code == BillingErrorCode.PAYMENT_NOT_FOUND
        assert fail.error_code == BillingErrorCode.PAYMENT_NOT_FOUND


@pytest.mark.asyncio
class TestRenewalInvoice:
    """Tests for generate_renewal_invoice."""

    async def test_invoices_next_period(
        self, invoice_service, sample_subscription, mock_notification_sender
    ):
        result = await invoice_service.generate_renewal_invoice(sample_subscription.id)

        assert result.success is True
        invoice = result.data.invoice
        period_start = sample_subscription.current_period_end
        assert invoice.status == InvoiceStatus.OPEN
        assert invoice.period_start == period_start
        assert invoice.period_end == period_start + relativedelta(months=1)
        assert invoice.due_date == period_start + timedelta(days=15)
        assert invoice.total == Decimal("1210.00")
        assert result.data.items[0].type == InvoiceItemType.SUBSCRIPTION
        assert sent_types(mock_notification_sender) == [NotificationType.INVOICE_CREATED]

    async def test_same_period_returns_existing_invoice(
        self, invoice_service, sample_subscription
    ):
        first = await invoice_service.generate_renewal_invoice(sample_subscription.id)
        second = await invoice_service.generate_renewal_invoice(sample_subscription.id)

        assert second.data.invoice.id == first.data.invoice.id
        listed = await invoice_service.list_invoices(sample_subscription.id)
        assert len(listed.data) == 1

    async def test_applies_running_recurring_coupon(
        self, notification_service, test_db, sample_subscription, open_invoice
    ):
        coupons = CouponService()
        invoice_service = InvoiceService(
            coupon_service=coupons, notification_service=notification_service
        )
        await BillingFactory.create_coupon(test_db, "LOYAL3", duration_months=3)
        first = await coupons.apply_coupon_to_invoice(open_invoice.id, "LOYAL3")
        assert first.success is True

        result = await invoice_service.generate_renewal_invoice(sample_subscription.id)

        invoice = result.data.invoice
        assert invoice.discount == Decimal("200.00")
        assert invoice.tax == Decimal("168.00")
        assert invoice.total == Decimal("968.00")
        assert invoice.coupon_id is not None

    async def test_deactivated_coupon_keeps_granted_discount(
        self, notification_service, test_db, sample_plan, sample_subscription, open_invoice
    ):
        coupons = CouponService()
        invoice_service = InvoiceService(
            coupon_service=coupons, notification_service=notification_service
        )
        await BillingFactory.create_coupon(test_db, "LOYAL3", duration_months=3)
        await coupons.apply_coupon_to_invoice(open_invoice.id, "LOYAL3")
        await coupons.deactivate_coupon("LOYAL3")

        result = await invoice_service.generate_renewal_invoice(sample_subscription.id)

        assert result.data.invoice.discount == Decimal("200.00")

        # new subscribers cannot redeem it any more
        newcomer = await BillingFactory.create_subscription(test_db, sample_plan, owner_id=31)
        validation = await coupons.validate("LOYAL3", newcomer.id, Decimal("1000.00"))
        assert validation.error_code == BillingErrorCode.COUPON_INACTIVE

    async def test_unknown_subscription(self, invoice_service):
        result = await invoice_service.generate_renewal_invoice(999999)

        assert result.error_code == BillingErrorCode.SUBSCRIPTION_NOT_FOUND


@pytest.mark.asyncio
class TestPlanChangeInvoice:
    async def test_invoices_positive_net(self, invoice_service, sample_subscription):
        proration = ProrationResult(
            total_period_days=30,
            elapsed_days=10,
            remaining_days=20,
            credit_amount=Decimal("666.67"),
            charge_amount=Decimal("1000.00"),
            net_amount=Decimal("333.33"),
            lines=[
                ProrationLine(
                    type=ProrationLineType.CREDIT,
                    description="Unused time on Basic (20 days)",
                    days=20,
                    daily_rate=Decimal("33.33"),
                    amount=Decimal("-666.67"),
                ),
                ProrationLine(
                    type=ProrationLineType.CHARGE,
                    description="Remaining time on Pro (20 days)",
                    days=20,
                    daily_rate=Decimal("50.00"),
                    amount=Decimal("1000.00"),
                ),
            ],
        )

        result = await invoice_service.create_plan_change_invoice(
            sample_subscription.id, proration
        )

        assert result.success is True
        assert result.data.invoice.status == InvoiceStatus.OPEN
        assert result.data.invoice.subtotal == Decimal("333.33")
        assert result.data.invoice.total == Decimal("403.33")
        assert [item.type for item in result.data.items] == [
            InvoiceItemType.CREDIT,
            InvoiceItemType.CHARGE,
        ]

    async def test_rejects_non_positive_net(self, invoice_service, sample_subscription):
        proration = ProrationResult(
            total_period_days=30,
            elapsed_days=10,
            remaining_days=20,
            net_amount=Decimal("-100.00"),
        )

        result = await invoice_service.create_plan_change_invoice(
            sample_subscription.id, proration
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
class TestInvoiceQueries:
    async def test_list_filters_by_status(
        self, invoice_service, sample_subscription, open_invoice, draft_invoice
    ):
        all_invoices = await invoice_service.list_invoices(sample_subscription.id)
        drafts = await invoice_service.list_invoices(
            sample_subscription.id, status=InvoiceStatus.DRAFT
        )

        assert {inv.id for inv in all_invoices.data} == {open_invoice.id, draft_invoice.id}
        assert [inv.id for inv in drafts.data] == [draft_invoice.id]

    async def test_get_unknown_invoice(self, invoice_service):
        result = await invoice_service.get_invoice(999999)
        paid = await invoice_service.get_amount_paid(999999)

        assert result.error_code == BillingErrorCode.INVOICE_NOT_FOUND
        assert paid.error_code == BillingErrorCode.INVOICE_NOT_FOUND

    async def test_balance_due(self, invoice_service, open_invoice):
        await invoice_service.register_payment(
            open_invoice.id, Decimal("210.00"), PaymentMethod.CASH
        )

        detail = await invoice_service.get_invoice(open_invoice.id)

        assert detail.data.amount_paid == Decimal("210.00")
        assert detail.data.balance_due == Decimal("1000.00")

    async def test_store_failures_on_reads(
        self, invoice_service, sample_subscription, open_invoice
    ):
        down = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        with patch.object(invoice_service.invoice_repo, "get", down), patch.object(
            invoice_service.invoice_repo, "list_for_subscription", down
        ):
            detail = await invoice_service.get_invoice(open_invoice.id)
            paid = await invoice_service.get_amount_paid(open_invoice.id)
            listed = await invoice_service.list_invoices(sample_subscription.id)

        assert detail.error_code == BillingErrorCode.INTERNAL_ERROR
        assert paid.error_code == BillingErrorCode.INTERNAL_ERROR
        assert listed.error_code == BillingErrorCode.INTERNAL_ERROR

    async def test_renewal_store_failure(self, invoice_service, sample_subscription):
        with patch.object(
            invoice_service.subscription_repo,
            "get",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down"))),
        ):
            result = await invoice_service.generate_renewal_invoice(sample_subscription.id)

        assert result.error_code == BillingErrorCode.INTERNAL_ERROR
        invoices = await invoice_service.list_invoices(sample_subscription.id)
        assert invoices.data == []
