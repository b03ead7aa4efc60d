"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    BillingCycle,
    SubscriptionStatus,
    TokenTransactionType,
    InvoiceStatus,
    InvoiceItemType,
    PaymentStatus,
    PaymentMethod,
    PaymentProvider,
    ChargeStatus,
    DiscountType,
    ProrationLineType,
    NotificationType,
)
from packages.billing.models.domain.results import (
    BillingError,
    BillingErrorCode,
    BillingResult,
)

__all__ = [
    # Enums
    "BillingCycle",
    "SubscriptionStatus",
    "TokenTransactionType",
    "InvoiceStatus",
    "InvoiceItemType",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentProvider",
    "ChargeStatus",
    "DiscountType",
    "ProrationLineType",
    "NotificationType",
    # Results
    "BillingError",
    "BillingErrorCode",
    "BillingResult",
]
