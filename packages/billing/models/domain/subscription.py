"""
Domain models for subscriptions.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from common.core.clock import utc_now
from packages.billing.models.domain.enums import BillingCycle, SubscriptionStatus


class Subscription(BaseModel):
    """
    Owner subscription domain model.

    Token balances are a cache of the token ledger:
    - included_tokens_remaining: monthly allowance, expires at period end
    - purchased_tokens_balance: bought separately, carries over
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    plan_id: int

    billing_cycle: BillingCycle
    status: SubscriptionStatus

    # Billing period
    current_period_start: datetime
    current_period_end: datetime
    next_billing_date: datetime
    trial_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None

    # Token balances
    included_tokens_remaining: int
    purchased_tokens_balance: int
    tokens_used_this_period: int

    created_at: datetime
    updated_at: datetime

    @property
    def available_tokens(self) -> int:
        return self.included_tokens_remaining + self.purchased_tokens_balance

    def can_consume(self) -> bool:
        return self.status.can_consume()

    def days_until_renewal(self) -> int:
        delta = self.current_period_end - utc_now()
        return max(0, delta.days)


class SubscriptionCreateModel(BaseModel):
    """Model for creating a new subscription. Balances start empty and are credited through the ledger."""

    model_config = ConfigDict(use_enum_values=True)

    owner_id: int
    plan_id: int
    billing_cycle: BillingCycle
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    next_billing_date: datetime
    trial_ends_at: Optional[datetime] = None
    included_tokens_remaining: int = 0
    purchased_tokens_balance: int = 0
    tokens_used_this_period: int = 0


class SubscriptionUpdateModel(BaseModel):
    """Model for updating subscription lifecycle fields. Token columns go through the ledger only."""

    model_config = ConfigDict(use_enum_values=True)

    plan_id: Optional[int] = None
    billing_cycle: Optional[BillingCycle] = None
    status: Optional[SubscriptionStatus] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    canceled_at: Optional[datetime] = None

