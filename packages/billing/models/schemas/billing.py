"""
API schemas for billing operations.

Request models for billing endpoints. Responses reuse the domain models.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from packages.billing.models.domain.enums import BillingCycle, PaymentMethod
from packages.billing.models.domain.invoice import InvoiceItemInput


# ============================================================================
# Subscription Schemas
# ============================================================================


class SubscriptionCreateRequest(BaseModel):
    owner_id: int
    plan_id: int
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    start_trial: bool = False


class PlanChangeRequest(BaseModel):
    """Request to move a subscription to another plan and/or billing cycle."""

    plan_id: int
    billing_cycle: Optional[BillingCycle] = None
    change_date: Optional[datetime] = Field(
        default=None, description="Defaults to now. Used to preview back-dated changes."
    )


class CancelSubscriptionRequest(BaseModel):
    at_period_end: bool = Field(
        default=True,
        description="Keep access until the end of the paid period instead of canceling now.",
    )


# ============================================================================
# Token Schemas
# ============================================================================


class TokenConsumeRequest(BaseModel):
    """Request to consume tokens. Repeating an idempotency_key replays the first result."""

    amount: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)
    idempotency_key: Optional[str] = Field(None, max_length=255)
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[str] = Field(None, max_length=255)


class TokenPurchaseRequest(BaseModel):
    amount: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    description: Optional[str] = Field(None, max_length=500)
    idempotency_key: Optional[str] = Field(None, max_length=255)


class TokenAdjustRequest(BaseModel):
    amount: int = Field(..., description="Signed; negative removes purchased tokens.")
    reason: str = Field(..., min_length=1, max_length=500)


class TokenRefundRequest(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[str] = Field(None, max_length=255)


# ============================================================================
# Invoice Schemas
# ============================================================================


class InvoiceCreateRequest(BaseModel):
    subscription_id: int
    items: List[InvoiceItemInput] = Field(..., min_length=1)
    tax_rate: Optional[Decimal] = Field(
        default=None, description="Percent, 0-100. Defaults to the billing tax rate."
    )
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    open_immediately: bool = False


class InvoiceVoidRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentCreateRequest(BaseModel):
    """A payment received for an invoice."""

    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    provider_payment_id: Optional[str] = Field(None, max_length=255)
    provider_reference: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class PendingPaymentConfirmRequest(BaseModel):
    provider_payment_id: Optional[str] = Field(None, max_length=255)


class PendingPaymentFailRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ============================================================================
# Coupon Schemas
# ============================================================================


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    subscription_id: int
    amount: Decimal = Field(..., ge=0)


class CouponApplyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
