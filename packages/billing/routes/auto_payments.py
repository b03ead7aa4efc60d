"""
Auto-payment API routes.

Stored payment method configuration and on-demand charges.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.auto_payment import (
    AutoPaymentAttempt,
    AutoPaymentConfig,
    AutoPaymentSetup,
    AutoPaymentSweepReport,
)
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.auto_payment_service import AutoPaymentService

router = APIRouter()


def get_auto_payment_service() -> AutoPaymentService:
    return AutoPaymentService()


@router.put("/{subscription_id}", response_model=AutoPaymentConfig)
@trace_span
async def setup_auto_payment(
    subscription_id: int,
    setup: AutoPaymentSetup,
    actor: Optional[str] = Depends(audit_actor),
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    """Store (or replace) the payment method charged for this subscription."""
    return unwrap(
        await auto_payment_service.setup_auto_payment(subscription_id, setup, actor=actor)
    )


@router.get("/{subscription_id}", response_model=AutoPaymentConfig)
@trace_span
async def get_auto_payment_config(
    subscription_id: int,
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    return unwrap(await auto_payment_service.get_config(subscription_id))


@router.post("/{subscription_id}/enable", response_model=AutoPaymentConfig)
@trace_span
async def enable_auto_payment(
    subscription_id: int,
    actor: Optional[str] = Depends(audit_actor),
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    """Re-enable charging and clear the failed attempt counter."""
    return unwrap(
        await auto_payment_service.enable_auto_payment(subscription_id, actor=actor)
    )


@router.post("/{subscription_id}/disable", response_model=AutoPaymentConfig)
@trace_span
async def disable_auto_payment(
    subscription_id: int,
    actor: Optional[str] = Depends(audit_actor),
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    return unwrap(
        await auto_payment_service.disable_auto_payment(subscription_id, actor=actor)
    )


@router.post("/invoices/{invoice_id}/charge", response_model=AutoPaymentAttempt)
@trace_span
async def charge_invoice(
    invoice_id: int,
    actor: Optional[str] = Depends(audit_actor),
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    """
    Charge the stored payment method for an OPEN invoice.

    A declined card is a normal outcome: the response is 200 with status
    "failed" and the updated failure counter.
    """
    return unwrap(
        await auto_payment_service.process_auto_payment(invoice_id, actor=actor)
    )


@router.post("/sweep", response_model=AutoPaymentSweepReport)
@trace_span
async def run_sweep(
    auto_payment_service: AutoPaymentService = Depends(get_auto_payment_service),
):
    """Charge every due OPEN invoice with auto-payment enabled."""
    return await auto_payment_service.process_all_pending_auto_payments()
