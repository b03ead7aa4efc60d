"""
Unit tests for PlansService.
"""

import pytest
from decimal import Decimal

from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.plans import PlanCreateModel, PlanUpdateModel
from packages.billing.models.domain.results import BillingErrorCode
from packages.billing.services.plans_service import PlansService


@pytest.fixture
def plans_service():
    return PlansService()


def plan_data(**overrides) -> PlanCreateModel:
    values = {
        "name": "starter",
        "display_name": "Starter",
        "monthly_price": Decimal("500.00"),
        "annual_price": Decimal("5000.00"),
        "included_tokens_monthly": 200,
    }
    values.update(overrides)
    return PlanCreateModel(**values)


@pytest.mark.asyncio
class TestCreatePlan:
    async def test_defaults_to_billing_currency(self, plans_service):
        result = await plans_service.create_plan(plan_data(), actor="admin")

        assert result.success is True
        assert result.data.currency == "ARS"
        assert result.data.monthly_price == Decimal("500.00")
        assert result.data.is_active is True

        entries = await AuditService().list_for_entity("plan", result.data.id)
        assert [e.action for e in entries] == [AuditAction.PLAN_CREATED]
        assert entries[0].actor == "admin"

    async def test_currency_is_uppercased(self, plans_service):
        result = await plans_service.create_plan(plan_data(currency="usd"))

        assert result.data.currency == "USD"

    async def test_annual_price_above_twelve_months(self, plans_service):
        result = await plans_service.create_plan(
            plan_data(annual_price=Decimal("6000.01"))
        )

        assert result.error_code == BillingErrorCode.VALIDATION_ERROR

    async def test_duplicate_name(self, plans_service, sample_plan):
        result = await plans_service.create_plan(plan_data(name=sample_plan.name))

        assert result.error_code == BillingErrorCode.ALREADY_EXISTS


@pytest.mark.asyncio
class TestUpdateAndRead:
    async def test_update_only_touches_given_fields(self, plans_service, sample_plan):
        result = await plans_service.update_plan(
            sample_plan.id, PlanUpdateModel(monthly_price=Decimal("1100.00"))
        )

        assert result.data.monthly_price == Decimal("1100.00")
        assert result.data.included_tokens_monthly == sample_plan.included_tokens_monthly
        assert result.data.display_name == sample_plan.display_name

    async def test_update_is_audited_with_before_and_after(
        self, plans_service, sample_plan
    ):
        await plans_service.update_plan(sample_plan.id, PlanUpdateModel(is_active=False))

        entries = await AuditService().list_for_entity("plan", sample_plan.id)
        assert entries[-1].action == AuditAction.PLAN_UPDATED
        assert entries[-1].before["is_active"] is True
        assert entries[-1].after["is_active"] is False

    async def test_update_unknown_plan(self, plans_service):
        result = await plans_service.update_plan(999999, PlanUpdateModel(is_active=False))

        assert result.error_code == BillingErrorCode.PLAN_NOT_FOUND

    async def test_get_plan(self, plans_service, sample_plan):
        found = await plans_service.get_plan(sample_plan.id)
        missing = await plans_service.get_plan(999999)

        assert found.data.name == "basic"
        assert missing.error_code == BillingErrorCode.PLAN_NOT_FOUND

    async def test_list_plans_by_price(
        self, plans_service, sample_plan, premium_plan, retired_plan
    ):
        active = await plans_service.list_plans()
        everything = await plans_service.list_plans(active_only=False)

        assert [p.name for p in active] == ["basic", "premium"]
        assert [p.name for p in everything] == ["legacy", "basic", "premium"]
