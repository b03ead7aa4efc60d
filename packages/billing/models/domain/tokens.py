"""
Domain models for the token ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import TokenTransactionType


class TokenTransaction(BaseModel):
    """Immutable ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    type: TokenTransactionType
    amount: int
    included_balance_after: int
    purchased_balance_after: int
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class TokenTransactionCreateModel(BaseModel):
    """Model for appending a ledger entry."""

    model_config = ConfigDict(use_enum_values=True)

    subscription_id: int
    type: TokenTransactionType
    amount: int
    included_balance_after: int
    purchased_balance_after: int
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_by: Optional[str] = None


class TokenBalance(BaseModel):
    """Both buckets plus the period counter, as seen after an operation."""

    subscription_id: int
    included: int
    purchased: int
    used_this_period: Optional[int] = None

    @property
    def total(self) -> int:
        return self.included + self.purchased

    @classmethod
    def after(cls, transaction: TokenTransaction) -> "TokenBalance":
        """Balance recorded on a ledger entry (the period counter is not part of it)."""
        return cls(
            subscription_id=transaction.subscription_id,
            included=transaction.included_balance_after,
            purchased=transaction.purchased_balance_after,
        )


class TokenBalanceSnapshot(BaseModel):
    """Balance row read straight from the subscription."""

    included: int
    purchased: int
    used_this_period: int
    status: str
