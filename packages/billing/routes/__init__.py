"""Billing API routes."""

from packages.billing.routes import (
    auto_payments,
    coupons,
    invoices,
    metrics,
    plans,
    subscriptions,
    tokens,
)

__all__ = [
    "auto_payments",
    "coupons",
    "invoices",
    "metrics",
    "plans",
    "subscriptions",
    "tokens",
]
