"""
Plan-change proration.

Pure arithmetic, no I/O. The customer is credited for the unused part of
the old plan and charged for the same days on the new one. Daily rates use
nominal period lengths (30 days monthly, 365 annual), so a 31-day month
credits slightly more than its price; the amounts are only rounded once,
at the end.
"""

from decimal import Decimal

from common.core.money import round_money
from packages.billing.models.domain.enums import ProrationLineType
from packages.billing.models.domain.proration import (
    ProrationInput,
    ProrationLine,
    ProrationResult,
)


def _daily_rate(price: Decimal, nominal_days: int) -> Decimal:
    return price / Decimal(nominal_days)


def calculate_proration(data: ProrationInput) -> ProrationResult:
    """
    Credit, charge and net amount for changing plan (or cycle) mid-period.

    Days are whole days. A change before the period start counts as zero
    elapsed days; a change on or after the period end has no effect.
    """
    total_days = (data.period_end - data.period_start).days
    elapsed_days = max(0, (data.change_date - data.period_start).days)
    remaining_days = total_days - elapsed_days

    if remaining_days <= 0:
        return ProrationResult(
            total_period_days=total_days,
            elapsed_days=elapsed_days,
            remaining_days=0,
        )

    old_rate = _daily_rate(
        data.old_plan.price_for(data.old_cycle), data.old_cycle.nominal_days()
    )
    new_rate = _daily_rate(
        data.new_plan.price_for(data.new_cycle), data.new_cycle.nominal_days()
    )

    credit = old_rate * remaining_days
    charge = new_rate * remaining_days

    lines = [
        ProrationLine(
            type=ProrationLineType.CREDIT,
            description=f"Unused time on {data.old_plan.name} ({remaining_days} days)",
            days=remaining_days,
            daily_rate=round_money(old_rate),
            amount=round_money(-credit),
        ),
        ProrationLine(
            type=ProrationLineType.CHARGE,
            description=f"Remaining time on {data.new_plan.name} ({remaining_days} days)",
            days=remaining_days,
            daily_rate=round_money(new_rate),
            amount=round_money(charge),
        ),
    ]

    return ProrationResult(
        total_period_days=total_days,
        elapsed_days=elapsed_days,
        remaining_days=remaining_days,
        credit_amount=round_money(credit),
        charge_amount=round_money(charge),
        net_amount=round_money(charge - credit),
        lines=lines,
    )
