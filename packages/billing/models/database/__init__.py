"""Database models for billing."""

from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.database.token_transaction import TokenTransactionEntity
from packages.billing.models.database.invoice import (
    InvoiceEntity,
    InvoiceItemEntity,
    PaymentEntity,
)
from packages.billing.models.database.coupon import (
    CouponEntity,
    CouponRedemptionEntity,
)
from packages.billing.models.database.auto_payment import AutoPaymentConfigEntity

__all__ = [
    "PlanEntity",
    "SubscriptionEntity",
    "TokenTransactionEntity",
    "InvoiceEntity",
    "InvoiceItemEntity",
    "PaymentEntity",
    "CouponEntity",
    "CouponRedemptionEntity",
    "AutoPaymentConfigEntity",
]
