"""Domain models for billing plans."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from packages.billing.models.domain.enums import BillingCycle


class Plan(BaseModel):
    """Plan catalogue entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    display_name: str
    description: Optional[str] = None

    currency: str
    monthly_price: Decimal
    annual_price: Optional[Decimal] = None

    max_companies: int
    max_users_per_company: int
    included_tokens_monthly: int
    module_keys: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)

    is_active: bool
    created_at: datetime
    updated_at: datetime

    def effective_annual_price(self) -> Decimal:
        """Annual price, falling back to twelve monthly payments."""
        if self.annual_price is not None:
            return self.annual_price
        return self.monthly_price * 12

    def price_for(self, cycle: BillingCycle) -> Decimal:
        if cycle == BillingCycle.ANNUAL:
            return self.effective_annual_price()
        return self.monthly_price

    def snapshot(self, cycle: BillingCycle) -> Dict[str, Any]:
        """Frozen JSON copy of pricing and naming for an invoice."""
        return PlanSnapshot(
            plan_id=self.id,
            name=self.name,
            display_name=self.display_name,
            currency=self.currency,
            billing_cycle=cycle,
            price=self.price_for(cycle),
            monthly_price=self.monthly_price,
            annual_price=self.effective_annual_price(),
            included_tokens_monthly=self.included_tokens_monthly,
        ).model_dump(mode="json")


class PlanSnapshot(BaseModel):
    """Copy of a plan embedded in an invoice at creation time."""

    plan_id: int
    name: str
    display_name: str
    currency: str
    billing_cycle: BillingCycle
    price: Decimal
    monthly_price: Decimal
    annual_price: Decimal
    included_tokens_monthly: int


class PlanCreateModel(BaseModel):
    """Model for creating a plan."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    monthly_price: Decimal = Field(..., ge=0)
    annual_price: Optional[Decimal] = Field(None, ge=0)
    max_companies: int = Field(1, ge=1)
    max_users_per_company: int = Field(5, ge=1)
    included_tokens_monthly: int = Field(0, ge=0)
    module_keys: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    is_active: bool = True


class PlanUpdateModel(BaseModel):
    """Model for updating a plan. Unset fields are left untouched."""

    display_name: Optional[str] = None
    description: Optional[str] = None
    monthly_price: Optional[Decimal] = Field(None, ge=0)
    annual_price: Optional[Decimal] = Field(None, ge=0)
    max_companies: Optional[int] = Field(None, ge=1)
    max_users_per_company: Optional[int] = Field(None, ge=1)
    included_tokens_monthly: Optional[int] = Field(None, ge=0)
    module_keys: Optional[List[str]] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
