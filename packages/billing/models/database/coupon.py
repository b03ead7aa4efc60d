"""
Database entities for coupons and their redemptions.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
)

from common.db.base import Base, BigIntegerType, TimestampMixin


class CouponEntity(TimestampMixin, Base):
    """
    Discount coupon.

    code is stored upper-cased so lookups are case-insensitive.
    """

    __tablename__ = "billing_coupons"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)

    discount_type = Column(String(20), nullable=False)  # percentage, fixed_amount
    discount_value = Column(Numeric(12, 2), nullable=False)

    # Usage caps
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    max_uses_per_user = Column(Integer, nullable=True)

    # Validity window
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)

    # Eligibility filters (empty list means no restriction)
    applicable_plan_ids = Column(JSON, nullable=False, default=list)
    applicable_billing_cycles = Column(JSON, nullable=False, default=list)
    min_amount = Column(Numeric(12, 2), nullable=True)
    first_payment_only = Column(Boolean, nullable=False, default=False)

    # Recurring discounts re-apply on renewals for this many months
    duration_months = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)


class CouponRedemptionEntity(Base):
    """At most one redemption row per (coupon, subscription)."""

    __tablename__ = "billing_coupon_redemptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    coupon_id = Column(
        BigIntegerType,
        ForeignKey("billing_coupons.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("billing_subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    applied_count = Column(Integer, nullable=False, default=1)
    first_applied_at = Column(DateTime, nullable=False)
    last_applied_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    last_invoice_id = Column(BigIntegerType, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "coupon_id", "subscription_id", name="uq_coupon_redemption_subscription"
        ),
    )
