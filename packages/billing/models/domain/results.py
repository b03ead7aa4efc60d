"""
Typed outcomes returned by billing services.

Validation, state-conflict and not-found outcomes are values callers branch
on, not exceptions.
"""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class BillingErrorCode(str, Enum):
    # Validation
    VALIDATION_ERROR = "validation_error"

    # Not found
    SUBSCRIPTION_NOT_FOUND = "subscription_not_found"
    PLAN_NOT_FOUND = "plan_not_found"
    INVOICE_NOT_FOUND = "invoice_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    COUPON_NOT_FOUND = "coupon_not_found"
    AUTO_PAYMENT_NOT_CONFIGURED = "auto_payment_not_configured"

    # State conflicts
    INSUFFICIENT_TOKENS = "insufficient_tokens"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    INVALID_STATE = "invalid_state"
    AMOUNT_EXCEEDS_BALANCE = "amount_exceeds_balance"
    ALREADY_EXISTS = "already_exists"
    COUPON_INACTIVE = "coupon_inactive"
    COUPON_NOT_YET_VALID = "coupon_not_yet_valid"
    COUPON_EXPIRED = "coupon_expired"
    COUPON_EXHAUSTED = "coupon_exhausted"
    COUPON_NOT_APPLICABLE = "coupon_not_applicable"
    MINIMUM_AMOUNT_NOT_MET = "minimum_amount_not_met"
    COUPON_ALREADY_USED = "coupon_already_used"
    FIRST_PAYMENT_ONLY = "first_payment_only"
    AUTO_PAYMENT_DISABLED = "auto_payment_disabled"

    # External dependencies
    PAYMENT_FAILED = "payment_failed"

    INTERNAL_ERROR = "internal_error"


class BillingError(BaseModel):
    code: BillingErrorCode
    message: str


class BillingResult(BaseModel, Generic[T]):
    """Success flag plus either data or a typed error."""

    success: bool
    data: Optional[T] = None
    error: Optional[BillingError] = None

    @classmethod
    def ok(cls, data: T = None) -> "BillingResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: BillingErrorCode, message: str) -> "BillingResult[T]":
        return cls(success=False, error=BillingError(code=code, message=message))

    @property
    def error_code(self) -> Optional[BillingErrorCode]:
        return self.error.code if self.error else None
