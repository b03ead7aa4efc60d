"""
Shared dependencies for billing routes.
"""

from typing import AsyncGenerator, Optional, TypeVar

from fastapi import Header, HTTPException, Request, status

from common.core.otel_axiom_exporter import get_logger
from packages.audit.context import reset_audit_context, set_audit_context
from packages.billing.models.domain.results import BillingErrorCode, BillingResult

logger = get_logger(__name__)

T = TypeVar("T")

NOT_FOUND_CODES = {
    BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
    BillingErrorCode.PLAN_NOT_FOUND,
    BillingErrorCode.INVOICE_NOT_FOUND,
    BillingErrorCode.PAYMENT_NOT_FOUND,
    BillingErrorCode.COUPON_NOT_FOUND,
    BillingErrorCode.AUTO_PAYMENT_NOT_CONFIGURED,
}

STATUS_BY_CODE = {
    BillingErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    BillingErrorCode.PAYMENT_FAILED: status.HTTP_402_PAYMENT_REQUIRED,
    BillingErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    **{code: status.HTTP_404_NOT_FOUND for code in NOT_FOUND_CODES},
}


def status_for(code: BillingErrorCode) -> int:
    """HTTP status for an error code; everything not listed is a state conflict."""
    return STATUS_BY_CODE.get(code, status.HTTP_409_CONFLICT)


def unwrap(result: BillingResult[T]) -> T:
    """Return the result's data or raise the matching HTTPException."""
    if result.success:
        return result.data
    status_code = status_for(result.error.code)
    if status_code >= 500:
        logger.error(f"Billing operation failed: {result.error.message}")
    raise HTTPException(
        status_code=status_code,
        detail={"code": result.error.code.value, "message": result.error.message},
    )


async def audit_actor(
    request: Request,
    x_actor_id: Optional[str] = Header(default=None),
) -> AsyncGenerator[Optional[str], None]:
    """
    Bind the acting principal and client IP for audit entries written
    during this request.
    """
    ip_address = request.client.host if request.client else None
    tokens = set_audit_context(x_actor_id, ip_address)
    try:
        yield x_actor_id
    finally:
        reset_audit_context(tokens)
