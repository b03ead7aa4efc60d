"""Service for the plan catalogue."""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.plans import Plan, PlanCreateModel, PlanUpdateModel
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.services.errors import store_failure

logger = get_logger(__name__)

PLAN_ENTITY = "plan"


class PlansService:
    """Service for creating and reading plans."""

    def __init__(self):
        self.plan_repo = PlanRepository()
        self.audit = AuditService()

    @trace_span
    async def create_plan(
        self, plan_data: PlanCreateModel, actor: Optional[str] = None
    ) -> BillingResult[Plan]:
        """Add a plan. Names are unique; currency defaults to the billing currency."""
        if plan_data.annual_price is not None and plan_data.annual_price > plan_data.monthly_price * 12:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                "Annual price cannot exceed twelve monthly payments",
            )
        try:
            existing = await self.plan_repo.get_by_name(plan_data.name)
        except SQLAlchemyError as e:
            return store_failure(logger, "Plan lookup", e, plan_name=plan_data.name)
        if existing:
            return BillingResult.fail(
                BillingErrorCode.ALREADY_EXISTS, f"Plan {plan_data.name} already exists"
            )

        if plan_data.currency is None:
            plan_data = plan_data.model_copy(
                update={"currency": settings.billing_default_currency}
            )
        else:
            plan_data = plan_data.model_copy(update={"currency": plan_data.currency.upper()})

        try:
            plan = await self.plan_repo.create(plan_data)
        except IntegrityError:
            return BillingResult.fail(
                BillingErrorCode.ALREADY_EXISTS, f"Plan {plan_data.name} already exists"
            )
        except SQLAlchemyError as e:
            return store_failure(logger, "Plan creation", e, plan_name=plan_data.name)

        logger.info(
            f"Created plan {plan.name} at {plan.monthly_price} {plan.currency}/month",
            extra={"plan_id": plan.id},
        )
        await self.audit.record(
            AuditAction.PLAN_CREATED, PLAN_ENTITY, plan.id, after=plan, actor=actor
        )
        return BillingResult.ok(plan)

    @trace_span
    async def update_plan(
        self, plan_id: int, plan_data: PlanUpdateModel, actor: Optional[str] = None
    ) -> BillingResult[Plan]:
        """
        Update a plan's terms.

        Existing invoices keep the snapshot taken when they were issued, so
        price changes only affect invoices created afterwards.
        """
        try:
            plan = await self.plan_repo.get(plan_id)
            if plan is None:
                return BillingResult.fail(
                    BillingErrorCode.PLAN_NOT_FOUND, f"Plan {plan_id} not found"
                )
            updated = await self.plan_repo.update(plan_id, plan_data)
        except SQLAlchemyError as e:
            return store_failure(logger, "Plan update", e, plan_id=plan_id)

        await self.audit.record(
            AuditAction.PLAN_UPDATED,
            PLAN_ENTITY,
            plan_id,
            before=plan,
            after=updated,
            actor=actor,
        )
        return BillingResult.ok(updated)

    @trace_span
    async def get_plan(self, plan_id: int) -> BillingResult[Plan]:
        try:
            plan = await self.plan_repo.get(plan_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Plan lookup", e, plan_id=plan_id)
        if plan is None:
            return BillingResult.fail(
                BillingErrorCode.PLAN_NOT_FOUND, f"Plan {plan_id} not found"
            )
        return BillingResult.ok(plan)

    @trace_span
    async def list_plans(self, active_only: bool = True) -> List[Plan]:
        return await self.plan_repo.list_plans(active_only=active_only)
