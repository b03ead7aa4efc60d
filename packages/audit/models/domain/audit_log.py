"""
Domain models for the audit log.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class AuditAction(str, Enum):
    """Every mutating billing operation."""

    # Plans and subscriptions
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_PLAN_CHANGED = "subscription_plan_changed"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_REACTIVATED = "subscription_reactivated"
    SUBSCRIPTION_RENEWED = "subscription_renewed"

    # Token ledger
    TOKENS_CONSUMED = "tokens_consumed"
    TOKENS_PURCHASED = "tokens_purchased"
    TOKENS_ADJUSTED = "tokens_adjusted"
    TOKENS_REFUNDED = "tokens_refunded"
    TOKENS_ALLOWANCE_RESET = "tokens_allowance_reset"

    # Invoices and payments
    INVOICE_CREATED = "invoice_created"
    INVOICE_OPENED = "invoice_opened"
    INVOICE_VOIDED = "invoice_voided"
    INVOICE_UNCOLLECTIBLE = "invoice_uncollectible"
    PAYMENT_REGISTERED = "payment_registered"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"

    # Coupons
    COUPON_CREATED = "coupon_created"
    COUPON_DEACTIVATED = "coupon_deactivated"
    COUPON_APPLIED = "coupon_applied"

    # Auto-payment
    AUTO_PAYMENT_CONFIGURED = "auto_payment_configured"
    AUTO_PAYMENT_ENABLED = "auto_payment_enabled"
    AUTO_PAYMENT_DISABLED = "auto_payment_disabled"
    AUTO_PAYMENT_ATTEMPTED = "auto_payment_attempted"


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor: str
    action: AuditAction
    entity_type: str
    entity_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


class AuditLogCreateModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    actor: str
    action: AuditAction
    entity_type: str
    entity_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
