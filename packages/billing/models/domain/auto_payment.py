"""
Domain models for auto-payment.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from packages.billing.models.domain.enums import ChargeStatus, PaymentProvider


class AutoPaymentConfig(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    provider: PaymentProvider
    payment_method_ref: str
    customer_ref: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    card_exp_month: Optional[int] = None
    card_exp_year: Optional[int] = None
    is_enabled: bool
    failed_attempts: int
    last_failure_reason: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AutoPaymentSetup(BaseModel):
    """Stored payment method handed over by the provider's checkout flow."""

    model_config = ConfigDict(use_enum_values=True)

    provider: PaymentProvider
    payment_method_ref: str = Field(..., min_length=1, max_length=255)
    customer_ref: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = Field(None, pattern=r"^\d{4}$")
    card_exp_month: Optional[int] = Field(None, ge=1, le=12)
    card_exp_year: Optional[int] = Field(None, ge=2000)


class ChargeResult(BaseModel):
    """What a payment provider reports for one charge attempt."""

    status: ChargeStatus
    provider_payment_id: Optional[str] = None
    action_url: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def succeeded(cls, provider_payment_id: str) -> "ChargeResult":
        return cls(status=ChargeStatus.SUCCEEDED, provider_payment_id=provider_payment_id)

    @classmethod
    def requires_action(
        cls, action_url: Optional[str], provider_payment_id: Optional[str] = None
    ) -> "ChargeResult":
        return cls(
            status=ChargeStatus.REQUIRES_ACTION,
            action_url=action_url,
            provider_payment_id=provider_payment_id,
        )

    @classmethod
    def failed(
        cls, reason: str, provider_payment_id: Optional[str] = None
    ) -> "ChargeResult":
        return cls(
            status=ChargeStatus.FAILED,
            failure_reason=reason,
            provider_payment_id=provider_payment_id,
        )


class AutoPaymentAttempt(BaseModel):
    """Outcome of processing one invoice."""

    invoice_id: int
    status: ChargeStatus
    amount: Decimal
    payment_id: Optional[int] = None
    action_url: Optional[str] = None
    failure_reason: Optional[str] = None
    failed_attempts: int = 0
    auto_payment_disabled: bool = False


class AutoPaymentSweepReport(BaseModel):
    processed: int = 0
    succeeded: int = 0
    requires_action: int = 0
    failed: int = 0
    errors: int = 0
    failed_invoice_ids: List[int] = Field(default_factory=list)
