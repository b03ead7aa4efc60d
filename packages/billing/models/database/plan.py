"""
Database entity for plans.
"""

from sqlalchemy import Boolean, Column, Integer, JSON, Numeric, String, Text

from common.db.base import Base, BigIntegerType, TimestampMixin


class PlanEntity(TimestampMixin, Base):
    """
    Subscription plan catalogue entry.

    Prices may change over time; invoices keep a frozen plan snapshot so
    edits here never rewrite billed history.
    """

    __tablename__ = "billing_plans"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing
    currency = Column(String(3), nullable=False)
    monthly_price = Column(Numeric(12, 2), nullable=False)
    annual_price = Column(Numeric(12, 2), nullable=True)  # monthly x 12 when unset

    # Limits
    max_companies = Column(Integer, nullable=False, default=1)
    max_users_per_company = Column(Integer, nullable=False, default=5)
    included_tokens_monthly = Column(Integer, nullable=False, default=0)
    module_keys = Column(JSON, nullable=False, default=list)
    features = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)
