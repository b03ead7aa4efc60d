"""
Invoice and payment API routes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.enums import InvoiceStatus
from packages.billing.models.domain.invoice import (
    Invoice,
    InvoiceDetail,
    Payment,
    PaymentReceipt,
)
from packages.billing.models.schemas.billing import (
    CouponApplyRequest,
    InvoiceCreateRequest,
    InvoiceVoidRequest,
    PaymentCreateRequest,
    PendingPaymentConfirmRequest,
    PendingPaymentFailRequest,
)
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.invoice_service import InvoiceService

router = APIRouter()


def get_invoice_service() -> InvoiceService:
    return InvoiceService()


def get_coupon_service() -> CouponService:
    return CouponService()


@router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
@trace_span
async def create_invoice(
    invoice_data: InvoiceCreateRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    """Create a DRAFT invoice (or OPEN with open_immediately) with a sequential number."""
    return unwrap(
        await invoice_service.create_invoice(
            invoice_data.subscription_id,
            invoice_data.items,
            tax_rate=invoice_data.tax_rate,
            currency=invoice_data.currency,
            period_start=invoice_data.period_start,
            period_end=invoice_data.period_end,
            due_date=invoice_data.due_date,
            notes=invoice_data.notes,
            open_immediately=invoice_data.open_immediately,
            actor=actor,
        )
    )


@router.get("", response_model=List[Invoice])
@trace_span
async def list_invoices(
    subscription_id: int,
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(
        await invoice_service.list_invoices(
            subscription_id, status=invoice_status, limit=limit, offset=offset
        )
    )


@router.get("/{invoice_id}", response_model=InvoiceDetail)
@trace_span
async def get_invoice(
    invoice_id: int,
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(await invoice_service.get_invoice(invoice_id))


@router.post("/{invoice_id}/open", response_model=Invoice)
@trace_span
async def open_invoice(
    invoice_id: int,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(await invoice_service.open_invoice(invoice_id, actor=actor))


@router.post("/{invoice_id}/void", response_model=Invoice)
@trace_span
async def void_invoice(
    invoice_id: int,
    void_data: InvoiceVoidRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    """Void a DRAFT or OPEN invoice. Paid invoices need a credit note instead."""
    return unwrap(
        await invoice_service.void_invoice(invoice_id, void_data.reason, actor=actor)
    )


@router.post("/{invoice_id}/uncollectible", response_model=Invoice)
@trace_span
async def mark_uncollectible(
    invoice_id: int,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(await invoice_service.mark_uncollectible(invoice_id, actor=actor))


@router.post("/{invoice_id}/coupon", response_model=Invoice)
@trace_span
async def apply_coupon(
    invoice_id: int,
    coupon_data: CouponApplyRequest,
    actor: Optional[str] = Depends(audit_actor),
    coupon_service: CouponService = Depends(get_coupon_service),
):
    """Apply a coupon to a DRAFT or OPEN invoice and recompute its totals."""
    return unwrap(
        await coupon_service.apply_coupon_to_invoice(
            invoice_id, coupon_data.code, actor=actor
        )
    )


@router.post("/{invoice_id}/payments", response_model=PaymentReceipt)
@trace_span
async def register_payment(
    invoice_id: int,
    payment_data: PaymentCreateRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    """
    Record a completed payment.

    The amount may not exceed what is still owed. The invoice moves to PAID
    once completed payments cover its total.
    """
    return unwrap(
        await invoice_service.register_payment(
            invoice_id,
            payment_data.amount,
            payment_data.method,
            provider_payment_id=payment_data.provider_payment_id,
            provider_reference=payment_data.provider_reference,
            notes=payment_data.notes,
            actor=actor,
        )
    )


@router.post("/{invoice_id}/payments/pending", response_model=Payment)
@trace_span
async def record_pending_payment(
    invoice_id: int,
    payment_data: PaymentCreateRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(
        await invoice_service.record_pending_payment(
            invoice_id,
            payment_data.amount,
            payment_data.method,
            provider_payment_id=payment_data.provider_payment_id,
            provider_reference=payment_data.provider_reference,
            notes=payment_data.notes,
            actor=actor,
        )
    )


@router.post("/payments/{payment_id}/confirm", response_model=PaymentReceipt)
@trace_span
async def confirm_pending_payment(
    payment_id: int,
    confirm_data: PendingPaymentConfirmRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(
        await invoice_service.confirm_pending_payment(
            payment_id, provider_payment_id=confirm_data.provider_payment_id, actor=actor
        )
    )


@router.post("/payments/{payment_id}/fail", response_model=Payment)
@trace_span
async def fail_pending_payment(
    payment_id: int,
    fail_data: PendingPaymentFailRequest,
    actor: Optional[str] = Depends(audit_actor),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(
        await invoice_service.fail_pending_payment(payment_id, fail_data.reason, actor=actor)
    )
