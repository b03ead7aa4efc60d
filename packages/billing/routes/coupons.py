"""
Coupon API routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.coupon import (
    Coupon,
    CouponCreateModel,
    CouponValidation,
)
from packages.billing.models.schemas.billing import CouponValidateRequest
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.coupon_service import CouponService

router = APIRouter()


def get_coupon_service() -> CouponService:
    return CouponService()


@router.post("", response_model=Coupon, status_code=status.HTTP_201_CREATED)
@trace_span
async def create_coupon(
    coupon_data: CouponCreateModel,
    actor: Optional[str] = Depends(audit_actor),
    coupon_service: CouponService = Depends(get_coupon_service),
):
    return unwrap(await coupon_service.create_coupon(coupon_data, actor=actor))


@router.post("/validate", response_model=CouponValidation)
@trace_span
async def validate_coupon(
    validate_data: CouponValidateRequest,
    coupon_service: CouponService = Depends(get_coupon_service),
):
    """Check a code against a subscription and amount without redeeming it."""
    return unwrap(
        await coupon_service.validate(
            validate_data.code, validate_data.subscription_id, validate_data.amount
        )
    )


@router.get("/{code}", response_model=Coupon)
@trace_span
async def get_coupon(
    code: str,
    coupon_service: CouponService = Depends(get_coupon_service),
):
    return unwrap(await coupon_service.get_coupon(code))


@router.post("/{code}/deactivate", response_model=Coupon)
@trace_span
async def deactivate_coupon(
    code: str,
    actor: Optional[str] = Depends(audit_actor),
    coupon_service: CouponService = Depends(get_coupon_service),
):
    return unwrap(await coupon_service.deactivate_coupon(code, actor=actor))
