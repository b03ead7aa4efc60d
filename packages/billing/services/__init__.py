"""Billing services."""

from packages.billing.services.auto_payment_service import AutoPaymentService
from packages.billing.services.billing_metrics_service import BillingMetricsService
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.notification_service import NotificationService
from packages.billing.services.plans_service import PlansService
from packages.billing.services.proration import calculate_proration
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.token_ledger_service import TokenLedgerService

__all__ = [
    "AutoPaymentService",
    "BillingMetricsService",
    "CouponService",
    "InvoiceService",
    "NotificationService",
    "PlansService",
    "SubscriptionService",
    "TokenLedgerService",
    "calculate_proration",
]
