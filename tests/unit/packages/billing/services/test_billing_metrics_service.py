"""
Unit tests for BillingMetricsService.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from common.core.clock import utc_now
from packages.billing.models.domain.enums import BillingCycle, PaymentMethod
from packages.billing.models.domain.results import BillingErrorCode
from packages.billing.services.billing_metrics_service import BillingMetricsService
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.token_ledger_service import TokenLedgerService
from tests.factories.billing_factory import BillingFactory


@pytest.fixture
def metrics_service():
    return BillingMetricsService()


def window():
    now = utc_now()
    return now - timedelta(days=1), now + timedelta(days=1)


@pytest.mark.asyncio
class TestBillingMetrics:
    async def test_empty_store(self, metrics_service):
        result = await metrics_service.get_metrics(*window())

        assert result.success is True
        assert result.data.mrr == Decimal("0.00")
        assert result.data.total_revenue == Decimal("0.00")
        assert result.data.pending_revenue == Decimal("0.00")
        assert result.data.token_revenue == Decimal("0.00")
        assert result.data.subscriptions_by_status == {}
        assert result.data.currency == "ARS"

    async def test_recurring_revenue_spreads_annual_plans(
        self, test_db, metrics_service, sample_subscription, premium_plan, canceled_subscription
    ):
        await BillingFactory.create_subscription(
            test_db, premium_plan, owner_id=8, billing_cycle=BillingCycle.ANNUAL
        )

        result = await metrics_service.get_metrics(*window())

        # 1000 monthly + 20000 / 12 annual; canceled subscriptions do not count
        assert result.data.mrr == Decimal("2666.67")
        assert result.data.arr == Decimal("32000.00")
        assert result.data.subscriptions_by_status == {"active": 2, "canceled": 1}

    async def test_revenue_and_invoices(self, metrics_service, open_invoice):
        await InvoiceService().register_payment(
            open_invoice.id, Decimal("210.00"), PaymentMethod.TRANSFER
        )

        result = await metrics_service.get_metrics(*window())

        assert result.data.total_revenue == Decimal("210.00")
        assert result.data.pending_revenue == Decimal("1210.00")
        assert result.data.invoices_by_status == {"open": 1}

    async def test_payments_outside_window_are_excluded(
        self, metrics_service, open_invoice
    ):
        await InvoiceService().register_payment(
            open_invoice.id, Decimal("210.00"), PaymentMethod.TRANSFER
        )
        now = utc_now()

        result = await metrics_service.get_metrics(
            now - timedelta(days=30), now - timedelta(days=20)
        )

        assert result.data.total_revenue == Decimal("0.00")
        assert result.data.invoices_by_status == {}

    async def test_token_figures(self, metrics_service, sample_subscription):
        ledger = TokenLedgerService()
        await ledger.consume(sample_subscription.id, 30)
        await ledger.add_purchased_tokens(sample_subscription.id, 100, Decimal("1.50"))

        result = await metrics_service.get_metrics(*window())

        assert result.data.tokens_consumed == 30
        assert result.data.tokens_purchased == 100
        assert result.data.token_revenue == Decimal("150.00")
        assert result.data.token_usage_by_type == {"usage": 30, "purchase": 100}

    async def test_inverted_window(self, metrics_service):
        start, end = window()

        result = await metrics_service.get_metrics(end, start)

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR
