"""
Database entity for subscriptions.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)

from common.db.base import Base, BigIntegerType, TimestampMixin


class SubscriptionEntity(TimestampMixin, Base):
    """
    Owner subscription database entity.

    One row per paying owner. The three token columns are a cache of the
    token ledger: included + purchased always equals the sum of the owner's
    token transactions. Rows are soft-canceled, never deleted.
    """

    __tablename__ = "billing_subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(BigIntegerType, nullable=False, unique=True, index=True)
    plan_id = Column(
        BigIntegerType,
        ForeignKey("billing_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    billing_cycle = Column(String(20), nullable=False)  # monthly, annual
    status = Column(
        String(20), nullable=False, index=True
    )  # trialing, active, past_due, paused, canceled

    # Billing period
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False)
    next_billing_date = Column(DateTime, nullable=False)
    trial_ends_at = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime, nullable=True)

    # Token balances (derived cache of the ledger)
    included_tokens_remaining = Column(Integer, nullable=False, default=0)
    purchased_tokens_balance = Column(Integer, nullable=False, default=0)
    tokens_used_this_period = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "included_tokens_remaining >= 0", name="ck_subscription_included_non_negative"
        ),
        Index("idx_subscription_next_billing", "status", "next_billing_date"),
    )
