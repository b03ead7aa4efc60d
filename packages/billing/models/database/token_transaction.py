"""
Database entity for token ledger entries.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String

from common.core.clock import utc_now
from common.db.base import Base, BigIntegerType


class TokenTransactionEntity(Base):
    """
    Immutable token ledger entry.

    Append-only: rows are inserted once and never updated. amount is signed
    (credits positive, usage and expirations negative) and the *_after
    columns snapshot both buckets right after the entry was applied.
    """

    __tablename__ = "billing_token_transactions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("billing_subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    type = Column(String(30), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    included_balance_after = Column(Integer, nullable=False)
    purchased_balance_after = Column(Integer, nullable=False)

    # Purchases carry pricing for revenue reconciliation
    unit_price = Column(Numeric(12, 4), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=True)

    description = Column(String(500), nullable=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)

    # Link back to the consuming feature (e.g. "invoice_extraction", 42)
    reference_type = Column(String(100), nullable=True)
    reference_id = Column(String(100), nullable=True)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_token_tx_subscription_created", "subscription_id", "created_at"),
    )
