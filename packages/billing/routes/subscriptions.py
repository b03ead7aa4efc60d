"""
Subscription API routes.

Lifecycle endpoints: create, change plan, cancel, reactivate, renew.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.proration import ProrationResult
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.summary import (
    PlanChangeOutcome,
    RenewalOutcome,
    SubscriptionSummary,
)
from packages.billing.models.schemas.billing import (
    CancelSubscriptionRequest,
    PlanChangeRequest,
    SubscriptionCreateRequest,
)
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.subscription_service import SubscriptionService

router = APIRouter()


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


@router.post("", response_model=Subscription, status_code=status.HTTP_201_CREATED)
@trace_span
async def create_subscription(
    request: SubscriptionCreateRequest,
    actor: Optional[str] = Depends(audit_actor),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Subscribe an owner to a plan.

    The first monthly token allowance is credited immediately.
    """
    return unwrap(
        await subscription_service.create_subscription(
            owner_id=request.owner_id,
            plan_id=request.plan_id,
            billing_cycle=request.billing_cycle,
            start_trial=request.start_trial,
            actor=actor,
        )
    )


@router.get("/by-owner/{owner_id}", response_model=Subscription)
@trace_span
async def get_subscription_by_owner(
    owner_id: int,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return unwrap(await subscription_service.get_by_owner_id(owner_id))


@router.get("/{subscription_id}", response_model=Subscription)
@trace_span
async def get_subscription(
    subscription_id: int,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return unwrap(await subscription_service.get_subscription(subscription_id))


@router.get("/{subscription_id}/summary", response_model=SubscriptionSummary)
@trace_span
async def get_subscription_summary(
    subscription_id: int,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Plan, balances, auto-payment, active coupon, recent invoices and token activity."""
    return unwrap(await subscription_service.get_summary(subscription_id))


@router.post("/{subscription_id}/proration-preview", response_model=ProrationResult)
@trace_span
async def preview_plan_change(
    subscription_id: int,
    request: PlanChangeRequest,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return unwrap(
        await subscription_service.preview_plan_change(
            subscription_id,
            new_plan_id=request.plan_id,
            new_cycle=request.billing_cycle,
            change_date=request.change_date,
        )
    )


@router.post("/{subscription_id}/change-plan", response_model=PlanChangeOutcome)
@trace_span
async def change_plan(
    subscription_id: int,
    request: PlanChangeRequest,
    actor: Optional[str] = Depends(audit_actor),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Change plan or cycle. A positive prorated difference is invoiced right away."""
    return unwrap(
        await subscription_service.change_plan(
            subscription_id,
            new_plan_id=request.plan_id,
            new_cycle=request.billing_cycle,
            change_date=request.change_date,
            actor=actor,
        )
    )


@router.post("/{subscription_id}/cancel", response_model=Subscription)
@trace_span
async def cancel_subscription(
    subscription_id: int,
    request: CancelSubscriptionRequest,
    actor: Optional[str] = Depends(audit_actor),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return unwrap(
        await subscription_service.cancel_subscription(
            subscription_id, at_period_end=request.at_period_end, actor=actor
        )
    )


@router.post("/{subscription_id}/reactivate", response_model=Subscription)
@trace_span
async def reactivate_subscription(
    subscription_id: int,
    actor: Optional[str] = Depends(audit_actor),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return unwrap(
        await subscription_service.reactivate_subscription(subscription_id, actor=actor)
    )


@router.post("/{subscription_id}/renew", response_model=RenewalOutcome)
@trace_span
async def renew_subscription(
    subscription_id: int,
    actor: Optional[str] = Depends(audit_actor),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Issue the renewal invoice, advance the period and reset the token allowance."""
    return unwrap(await subscription_service.renew_period(subscription_id, actor=actor))
