"""
Plans API routes.

Plan catalogue: public listing plus admin create and update.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.plans import Plan, PlanCreateModel, PlanUpdateModel
from packages.billing.routes.dependencies import audit_actor, unwrap
from packages.billing.services.plans_service import PlansService

router = APIRouter()


def get_plans_service() -> PlansService:
    return PlansService()


@router.get("", response_model=List[Plan])
@trace_span
async def list_plans(
    active_only: bool = Query(True),
    plans_service: PlansService = Depends(get_plans_service),
):
    """List plans, cheapest first."""
    return await plans_service.list_plans(active_only=active_only)


@router.get("/{plan_id}", response_model=Plan)
@trace_span
async def get_plan(
    plan_id: int,
    plans_service: PlansService = Depends(get_plans_service),
):
    return unwrap(await plans_service.get_plan(plan_id))


@router.post("", response_model=Plan, status_code=status.HTTP_201_CREATED)
@trace_span
async def create_plan(
    plan_data: PlanCreateModel,
    actor: Optional[str] = Depends(audit_actor),
    plans_service: PlansService = Depends(get_plans_service),
):
    return unwrap(await plans_service.create_plan(plan_data, actor=actor))


@router.patch("/{plan_id}", response_model=Plan)
@trace_span
async def update_plan(
    plan_id: int,
    plan_data: PlanUpdateModel,
    actor: Optional[str] = Depends(audit_actor),
    plans_service: PlansService = Depends(get_plans_service),
):
    """Update a plan. Invoices already issued keep their plan snapshot."""
    return unwrap(await plans_service.update_plan(plan_id, plan_data, actor=actor))
