"""
Domain models for plan-change proration.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from packages.billing.models.domain.enums import BillingCycle, ProrationLineType


class PlanPricing(BaseModel):
    """Prices of one side of a plan change."""

    plan_id: Optional[int] = None
    name: str
    monthly_price: Decimal = Field(..., ge=0)
    annual_price: Optional[Decimal] = Field(None, ge=0)

    def price_for(self, cycle: BillingCycle) -> Decimal:
        if cycle == BillingCycle.ANNUAL:
            if self.annual_price is not None:
                return self.annual_price
            return self.monthly_price * 12
        return self.monthly_price


class ProrationInput(BaseModel):
    old_plan: PlanPricing
    new_plan: PlanPricing
    old_cycle: BillingCycle
    new_cycle: BillingCycle
    period_start: datetime
    period_end: datetime
    change_date: datetime


class ProrationLine(BaseModel):
    type: ProrationLineType
    description: str
    days: int
    daily_rate: Decimal
    amount: Decimal


class ProrationResult(BaseModel):
    """
    Credit for the unused part of the old plan and charge for the new one.

    net_amount > 0 is an extra charge, < 0 a credit owed to the customer.
    """

    total_period_days: int
    elapsed_days: int
    remaining_days: int
    credit_amount: Decimal = Decimal("0.00")
    charge_amount: Decimal = Decimal("0.00")
    net_amount: Decimal = Decimal("0.00")
    lines: List[ProrationLine] = Field(default_factory=list)

    @property
    def has_effect(self) -> bool:
        return self.remaining_days > 0
