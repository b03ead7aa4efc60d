"""Domain models for billing metrics."""

from datetime import datetime
from decimal import Decimal
from typing import Dict

from pydantic import BaseModel, Field


class BillingMetrics(BaseModel):
    """Revenue, subscription and token figures for a reporting window."""

    period_start: datetime
    period_end: datetime
    currency: str

    mrr: Decimal
    arr: Decimal
    total_revenue: Decimal
    pending_revenue: Decimal

    subscriptions_by_status: Dict[str, int] = Field(default_factory=dict)
    invoices_by_status: Dict[str, int] = Field(default_factory=dict)

    tokens_consumed: int = 0
    tokens_purchased: int = 0
    token_revenue: Decimal = Decimal("0.00")
    token_usage_by_type: Dict[str, int] = Field(default_factory=dict)
