"""
Domain models for coupons and redemptions.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common.core.money import round_money
from packages.billing.models.domain.enums import BillingCycle, DiscountType


class Coupon(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    discount_type: DiscountType
    discount_value: Decimal
    max_uses: Optional[int] = None
    current_uses: int
    max_uses_per_user: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_plan_ids: List[int] = Field(default_factory=list)
    applicable_billing_cycles: List[BillingCycle] = Field(default_factory=list)
    min_amount: Optional[Decimal] = None
    first_payment_only: bool = False
    duration_months: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @property
    def is_recurring(self) -> bool:
        return bool(self.duration_months)

    def discount_for(self, amount: Decimal) -> Decimal:
        """Discount on amount, never more than the amount itself."""
        if self.discount_type == DiscountType.PERCENTAGE:
            return round_money(amount * self.discount_value / Decimal("100"))
        return round_money(min(self.discount_value, amount))


class CouponCreateModel(BaseModel):
    """Model for creating a coupon. Codes are normalised to upper case."""

    model_config = ConfigDict(use_enum_values=True)

    code: str = Field(..., min_length=3, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    discount_type: DiscountType
    discount_value: Decimal
    max_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_plan_ids: List[int] = Field(default_factory=list)
    applicable_billing_cycles: List[BillingCycle] = Field(default_factory=list)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    first_payment_only: bool = False
    duration_months: Optional[int] = Field(None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_ranges(self):
        if self.discount_type == DiscountType.PERCENTAGE.value:
            if not (Decimal("0") < self.discount_value <= Decimal("100")):
                raise ValueError("percentage discount must be greater than 0 and at most 100")
        elif self.discount_value <= 0:
            raise ValueError("fixed discount must be greater than 0")
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponRedemption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coupon_id: int
    subscription_id: int
    applied_count: int
    first_applied_at: datetime
    last_applied_at: datetime
    expires_at: Optional[datetime] = None
    last_invoice_id: Optional[int] = None


class CouponValidation(BaseModel):
    """A coupon that passed every check, with the discount it grants."""

    coupon: Coupon
    amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal


class ActiveCoupon(BaseModel):
    """Recurring coupon still attached to a subscription."""

    code: str
    name: str
    discount_type: DiscountType
    discount_value: Decimal
    applied_count: int
    remaining_uses: Optional[int] = None
    valid_until: Optional[datetime] = None
