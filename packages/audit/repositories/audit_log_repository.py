"""
Repository for audit log entries.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.audit.models.database.audit_log import AuditLogEntity
from packages.audit.models.domain.audit_log import AuditLogEntry


class AuditLogRepository(BaseRepository[AuditLogEntity, AuditLogEntry]):
    """Insert-only repository for audit entries."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(AuditLogEntity, AuditLogEntry, db_session)

    @trace_span
    async def list_for_entity(
        self, entity_type: str, entity_id: str, limit: int = 100
    ) -> List[AuditLogEntry]:
        """Oldest first, so the list reads as a history."""
        async with self._get_session() as session:
            result = await session.execute(
                select(AuditLogEntity)
                .where(
                    AuditLogEntity.entity_type == entity_type,
                    AuditLogEntity.entity_id == entity_id,
                )
                .order_by(AuditLogEntity.created_at, AuditLogEntity.id)
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())
