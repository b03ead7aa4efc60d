"""Billing repositories."""

from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.token_transaction_repository import (
    TokenTransactionRepository,
)
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.payment_repository import PaymentRepository
from packages.billing.repositories.coupon_repository import (
    CouponRepository,
    CouponRedemptionRepository,
)
from packages.billing.repositories.auto_payment_repository import (
    AutoPaymentConfigRepository,
)

__all__ = [
    "PlanRepository",
    "SubscriptionRepository",
    "TokenTransactionRepository",
    "InvoiceRepository",
    "PaymentRepository",
    "CouponRepository",
    "CouponRedemptionRepository",
    "AutoPaymentConfigRepository",
]
