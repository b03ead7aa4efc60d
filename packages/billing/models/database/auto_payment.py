"""
Database entity for auto-payment configuration.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from common.db.base import Base, BigIntegerType, TimestampMixin


class AutoPaymentConfigEntity(TimestampMixin, Base):
    """
    Stored payment method used to collect invoices automatically.

    One per subscription. Only masked card data is kept; the provider holds
    the actual instrument behind payment_method_ref.
    """

    __tablename__ = "billing_auto_payment_configs"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("billing_subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
    )

    provider = Column(String(20), nullable=False)  # stripe, mercadopago
    payment_method_ref = Column(String(255), nullable=False)
    customer_ref = Column(String(255), nullable=True)

    # Masked card metadata
    card_brand = Column(String(30), nullable=True)
    card_last4 = Column(String(4), nullable=True)
    card_exp_month = Column(Integer, nullable=True)
    card_exp_year = Column(Integer, nullable=True)

    is_enabled = Column(Boolean, nullable=False, default=True, index=True)
    failed_attempts = Column(Integer, nullable=False, default=0)
    last_failure_reason = Column(String(500), nullable=True)
    last_attempt_at = Column(DateTime, nullable=True)
    last_payment_at = Column(DateTime, nullable=True)
