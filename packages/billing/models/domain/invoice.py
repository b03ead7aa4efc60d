"""
Domain models for invoices, invoice items and payments.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from common.core.money import round_money
from packages.billing.models.domain.enums import (
    InvoiceItemType,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
)


class InvoiceItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    position: int
    type: InvoiceItemType
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class InvoiceItemInput(BaseModel):
    """A line to put on a new invoice. unit_price may be negative for credits."""

    type: InvoiceItemType = InvoiceItemType.SUBSCRIPTION
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    provider_payment_id: Optional[str] = None
    provider_reference: Optional[str] = None
    received_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class PaymentCreateModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    invoice_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    provider_payment_id: Optional[str] = None
    provider_reference: Optional[str] = None
    received_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None


class Invoice(BaseModel):
    """Invoice header."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    number: str
    subscription_id: int
    status: InvoiceStatus
    currency: str

    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    due_date: Optional[datetime] = None
    plan_snapshot: Optional[Dict[str, Any]] = None
    coupon_id: Optional[int] = None
    notes: Optional[str] = None

    opened_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class InvoiceDetail(BaseModel):
    """Invoice with its lines and payments, as needed to render or reconcile it."""

    invoice: Invoice
    items: List[InvoiceItem] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    amount_paid: Decimal = Decimal("0.00")

    @property
    def balance_due(self) -> Decimal:
        return round_money(self.invoice.total - self.amount_paid)


class InvoiceTotals(BaseModel):
    """Computed header money fields."""

    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    @classmethod
    def compute(
        cls, subtotal: Decimal, tax_rate: Decimal, discount: Decimal = Decimal("0")
    ) -> "InvoiceTotals":
        """Tax applies to the discounted subtotal; each field is rounded once."""
        taxable = subtotal - discount
        tax = taxable * tax_rate / Decimal("100")
        return cls(
            subtotal=round_money(subtotal),
            tax_rate=tax_rate,
            tax=round_money(tax),
            discount=round_money(discount),
            total=round_money(subtotal) - round_money(discount) + round_money(tax),
        )


class PaymentReceipt(BaseModel):
    """Outcome of registering or confirming a payment."""

    payment: Payment
    invoice: Invoice
    amount_paid: Decimal
    invoice_paid: bool
