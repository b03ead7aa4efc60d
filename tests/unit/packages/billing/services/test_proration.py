"""
Unit tests for plan-change proration.

Pure arithmetic; no database involved.
"""

from datetime import datetime
from decimal import Decimal

from packages.billing.models.domain.enums import BillingCycle, ProrationLineType
from packages.billing.models.domain.proration import PlanPricing, ProrationInput
from packages.billing.services.proration import calculate_proration

PERIOD_START = datetime(2024, 1, 1)
PERIOD_END = datetime(2024, 1, 31)  # 30 days


def pricing(name: str, monthly: str, annual: str = None) -> PlanPricing:
    return PlanPricing(
        name=name,
        monthly_price=Decimal(monthly),
        annual_price=Decimal(annual) if annual else None,
    )


def proration_input(
    old_plan: PlanPricing,
    new_plan: PlanPricing,
    change_date: datetime,
    old_cycle: BillingCycle = BillingCycle.MONTHLY,
    new_cycle: BillingCycle = BillingCycle.MONTHLY,
) -> ProrationInput:
    return ProrationInput(
        old_plan=old_plan,
        new_plan=new_plan,
        old_cycle=old_cycle,
        new_cycle=new_cycle,
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        change_date=change_date,
    )


class TestCalculateProration:
    """Tests for calculate_proration."""

    def test_upgrade_one_third_into_period(self):
        """Ten days into a thirty day period, 1000 -> 1500 nets 333.33."""
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Pro", "1500.00"),
                datetime(2024, 1, 11),
            )
        )

        assert result.total_period_days == 30
        assert result.elapsed_days == 10
        assert result.remaining_days == 20
        assert result.credit_amount == Decimal("666.67")
        assert result.charge_amount == Decimal("1000.00")
        assert result.net_amount == Decimal("333.33")
        assert result.has_effect is True

    def test_net_is_rounded_once(self):
        """Net is charge - credit before rounding, not the difference of rounded parts."""
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Premium", "2000.00"),
                datetime(2024, 1, 11),
            )
        )

        assert result.credit_amount == Decimal("666.67")
        assert result.charge_amount == Decimal("1333.33")
        assert result.net_amount == Decimal("666.67")

    def test_downgrade_gives_negative_net(self):
        result = calculate_proration(
            proration_input(
                pricing("Premium", "2000.00"),
                pricing("Basic", "1000.00"),
                datetime(2024, 1, 11),
            )
        )

        assert result.credit_amount == Decimal("1333.33")
        assert result.charge_amount == Decimal("666.67")
        assert result.net_amount == Decimal("-666.67")

    def test_lines_carry_signed_amounts(self):
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Pro", "1500.00"),
                datetime(2024, 1, 11),
            )
        )

        credit_line, charge_line = result.lines
        assert credit_line.type == ProrationLineType.CREDIT
        assert credit_line.amount == Decimal("-666.67")
        assert credit_line.daily_rate == Decimal("33.33")
        assert credit_line.days == 20
        assert "Basic" in credit_line.description

        assert charge_line.type == ProrationLineType.CHARGE
        assert charge_line.amount == Decimal("1000.00")
        assert charge_line.daily_rate == Decimal("50.00")
        assert "Pro" in charge_line.description

    def test_change_before_period_start_counts_no_elapsed_days(self):
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Pro", "1500.00"),
                datetime(2023, 12, 20),
            )
        )

        assert result.elapsed_days == 0
        assert result.remaining_days == 30
        assert result.credit_amount == Decimal("1000.00")
        assert result.charge_amount == Decimal("1500.00")
        assert result.net_amount == Decimal("500.00")

    def test_change_at_period_end_has_no_effect(self):
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Pro", "1500.00"),
                PERIOD_END,
            )
        )

        assert result.remaining_days == 0
        assert result.has_effect is False
        assert result.net_amount == Decimal("0.00")
        assert result.lines == []

    def test_change_after_period_end_has_no_effect(self):
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Pro", "1500.00"),
                datetime(2024, 3, 1),
            )
        )

        assert result.remaining_days == 0
        assert result.credit_amount == Decimal("0.00")
        assert result.charge_amount == Decimal("0.00")

    def test_monthly_to_annual_uses_nominal_year(self):
        """Annual daily rate is the annual price over 365 days."""
        result = calculate_proration(
            proration_input(
                pricing("Basic", "1000.00"),
                pricing("Basic", "1000.00", annual="10000.00"),
                datetime(2024, 1, 11),
                new_cycle=BillingCycle.ANNUAL,
            )
        )

        assert result.credit_amount == Decimal("666.67")
        assert result.charge_amount == Decimal("547.95")
        assert result.net_amount == Decimal("-118.72")


class TestPlanPricing:
    def test_annual_price_falls_back_to_twelve_months(self):
        plan = pricing("Basic", "100.00")

        assert plan.price_for(BillingCycle.ANNUAL) == Decimal("1200.00")
        assert plan.price_for(BillingCycle.MONTHLY) == Decimal("100.00")

    def test_explicit_annual_price_wins(self):
        plan = pricing("Basic", "100.00", annual="1000.00")

        assert plan.price_for(BillingCycle.ANNUAL) == Decimal("1000.00")

    def test_nominal_days_per_cycle(self):
        assert BillingCycle.MONTHLY.nominal_days() == 30
        assert BillingCycle.ANNUAL.nominal_days() == 365
