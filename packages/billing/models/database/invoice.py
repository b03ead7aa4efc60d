"""
Database entities for invoices, invoice items and payments.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)

from common.db.base import Base, BigIntegerType, TimestampMixin


class InvoiceEntity(TimestampMixin, Base):
    """
    Invoice header.

    Money columns are fixed-point. plan_snapshot is a frozen copy of the plan
    at creation time and is never joined back to billing_plans.
    """

    __tablename__ = "billing_invoices"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    number = Column(String(32), nullable=False, unique=True, index=True)  # INV-YYYYMM-NNNN
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("billing_subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status = Column(
        String(20), nullable=False, index=True
    )  # draft, open, paid, void, uncollectible
    currency = Column(String(3), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    plan_snapshot = Column(JSON, nullable=True)
    coupon_id = Column(
        BigIntegerType,
        ForeignKey("billing_coupons.id", ondelete="RESTRICT"),
        nullable=True,
    )
    notes = Column(Text, nullable=True)

    # Lifecycle timestamps
    opened_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    void_reason = Column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_invoice_status_due", "status", "due_date"),
        Index("idx_invoice_subscription_status", "subscription_id", "status"),
    )


class InvoiceItemEntity(Base):
    """Ordered invoice line."""

    __tablename__ = "billing_invoice_items"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(
        BigIntegerType,
        ForeignKey("billing_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)
    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)


class PaymentEntity(TimestampMixin, Base):
    """
    Payment against exactly one invoice.

    Several partial payments may accumulate; only COMPLETED rows count
    towards the invoice balance.
    """

    __tablename__ = "billing_payments"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(
        BigIntegerType,
        ForeignKey("billing_invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    method = Column(String(20), nullable=False)  # cash, transfer, card, mercadopago, stripe
    status = Column(String(20), nullable=False, index=True)  # pending, completed, failed

    provider_payment_id = Column(String(255), nullable=True, index=True)
    provider_reference = Column(String(500), nullable=True)  # e.g. 3DS action URL

    received_by = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    failure_reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (Index("idx_payment_invoice_status", "invoice_id", "status"),)
