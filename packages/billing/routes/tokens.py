"""
Token ledger API routes.

Every balance change goes through the ledger and leaves a transaction row.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.enums import TokenTransactionType
from packages.billing.models.domain.tokens import TokenBalance, TokenTransaction
from packages.billing.models.schemas.billing import (
    TokenAdjustRequest,
    TokenConsumeRequest,
    TokenPurchaseRequest,
    TokenRefundRequest,
)
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.token_ledger_service import TokenLedgerService

router = APIRouter()


def get_token_ledger_service() -> TokenLedgerService:
    return TokenLedgerService()


@router.get("/{subscription_id}", response_model=TokenBalance)
@trace_span
async def get_balance(
    subscription_id: int,
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    return unwrap(await ledger.get_balance(subscription_id))


@router.get("/{subscription_id}/history", response_model=List[TokenTransaction])
@trace_span
async def get_history(
    subscription_id: int,
    transaction_type: Optional[TokenTransactionType] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    """Ledger entries, newest first."""
    return unwrap(
        await ledger.get_history(
            subscription_id, transaction_type=transaction_type, limit=limit, offset=offset
        )
    )


@router.post("/{subscription_id}/consume", response_model=TokenBalance)
@trace_span
async def consume_tokens(
    subscription_id: int,
    consume_data: TokenConsumeRequest,
    actor: Optional[str] = Depends(audit_actor),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    """
    Consume tokens, monthly allowance first.

    Returns 409 with code insufficient_tokens when the balance cannot cover
    the amount; nothing is debited in that case.
    """
    return unwrap(
        await ledger.consume(
            subscription_id,
            consume_data.amount,
            description=consume_data.description,
            idempotency_key=consume_data.idempotency_key,
            reference_type=consume_data.reference_type,
            reference_id=consume_data.reference_id,
            actor=actor,
        )
    )


@router.post("/{subscription_id}/purchase", response_model=TokenBalance)
@trace_span
async def purchase_tokens(
    subscription_id: int,
    purchase_data: TokenPurchaseRequest,
    actor: Optional[str] = Depends(audit_actor),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    return unwrap(
        await ledger.add_purchased_tokens(
            subscription_id,
            purchase_data.amount,
            purchase_data.unit_price,
            description=purchase_data.description,
            idempotency_key=purchase_data.idempotency_key,
            actor=actor,
        )
    )


@router.post("/{subscription_id}/adjust", response_model=TokenBalance)
@trace_span
async def adjust_tokens(
    subscription_id: int,
    adjust_data: TokenAdjustRequest,
    actor: Optional[str] = Depends(audit_actor),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    return unwrap(
        await ledger.adjust_tokens(
            subscription_id, adjust_data.amount, adjust_data.reason, actor=actor
        )
    )


@router.post("/{subscription_id}/refund", response_model=TokenBalance)
@trace_span
async def refund_tokens(
    subscription_id: int,
    refund_data: TokenRefundRequest,
    actor: Optional[str] = Depends(audit_actor),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    return unwrap(
        await ledger.refund_tokens(
            subscription_id,
            refund_data.amount,
            refund_data.reason,
            reference_type=refund_data.reference_type,
            reference_id=refund_data.reference_id,
            actor=actor,
        )
    )


@router.post("/{subscription_id}/reset-allowance", response_model=TokenBalance)
@trace_span
async def reset_allowance(
    subscription_id: int,
    actor: Optional[str] = Depends(audit_actor),
    ledger: TokenLedgerService = Depends(get_token_ledger_service),
):
    """Expire what is left of the allowance and credit the plan's monthly tokens. Once per period."""
    return unwrap(await ledger.reset_monthly_allowance(subscription_id, actor=actor))
