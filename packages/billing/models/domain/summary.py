"""
Composite views over a subscription.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from packages.billing.models.domain.auto_payment import AutoPaymentConfig
from packages.billing.models.domain.coupon import ActiveCoupon
from packages.billing.models.domain.invoice import Invoice
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.proration import ProrationResult
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.tokens import TokenBalance, TokenTransaction


class PlanChangeOutcome(BaseModel):
    """Subscription after a plan or cycle change and the proration behind it."""

    subscription: Subscription
    proration: ProrationResult
    invoice: Optional[Invoice] = None


class RenewalOutcome(BaseModel):
    subscription: Subscription
    invoice: Invoice
    tokens: TokenBalance


class SubscriptionSummary(BaseModel):
    """Everything the account billing page shows, in one read."""

    subscription: Subscription
    plan: Plan
    tokens: TokenBalance
    auto_payment: Optional[AutoPaymentConfig] = None
    active_coupon: Optional[ActiveCoupon] = None
    recent_invoices: List[Invoice] = Field(default_factory=list)
    token_history: List[TokenTransaction] = Field(default_factory=list)
