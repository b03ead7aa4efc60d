"""
Repository for the plan catalogue.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.domain.plans import Plan


class PlanRepository(BaseRepository[PlanEntity, Plan]):
    """Repository for managing plans."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(PlanEntity, Plan, db_session)

    @trace_span
    async def get_by_name(self, name: str) -> Optional[Plan]:
        async with self._get_session() as session:
            result = await session.execute(
                select(PlanEntity).where(PlanEntity.name == name)
            )
            plan = result.scalar_one_or_none()
            return self._entity_to_domain(plan) if plan else None

    @trace_span
    async def list_plans(self, active_only: bool = True) -> List[Plan]:
        """List plans ordered by monthly price."""
        query = select(PlanEntity).order_by(PlanEntity.monthly_price, PlanEntity.id)
        if active_only:
            query = query.where(PlanEntity.is_active.is_(True))

        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())
