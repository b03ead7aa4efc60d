"""
Service for writing and reading the audit log.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.audit.context import SYSTEM_ACTOR, current_actor, current_ip_address
from packages.audit.models.domain.audit_log import (
    AuditAction,
    AuditLogCreateModel,
    AuditLogEntry,
)
from packages.audit.repositories.audit_log_repository import AuditLogRepository

logger = get_logger(__name__)

Snapshot = Union[BaseModel, Dict[str, Any], None]


def to_snapshot(value: Snapshot) -> Optional[Dict[str, Any]]:
    """JSON-safe dict for a model or plain dict (Decimals and datetimes become strings)."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return {
        key: (item.model_dump(mode="json") if isinstance(item, BaseModel) else item)
        for key, item in value.items()
    }


class AuditService:
    """
    Best-effort audit trail.

    record() opens its own transaction, so it never joins (or rolls back)
    the caller's business transaction. Call it after the business
    transaction has committed.
    """

    def __init__(self):
        self.audit_repo = AuditLogRepository()

    @trace_span
    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Union[int, str],
        before: Snapshot = None,
        after: Snapshot = None,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[AuditLogEntry]:
        """
        Append one entry. Returns None when the write failed.

        Failures are logged and swallowed: losing an audit entry must never
        undo or fail a committed billing mutation.
        """
        try:
            entry = AuditLogCreateModel(
                actor=actor or current_actor() or SYSTEM_ACTOR,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                before=to_snapshot(before),
                after=to_snapshot(after),
                ip_address=ip_address or current_ip_address(),
            )
            async with transaction():
                return await self.audit_repo.create(entry)
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {action.value} for {entity_type} {entity_id}: {e}",
                extra={
                    "action": action.value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
                exc_info=True,
            )
            return None

    @trace_span
    async def list_for_entity(
        self, entity_type: str, entity_id: Union[int, str], limit: int = 100
    ) -> List[AuditLogEntry]:
        return await self.audit_repo.list_for_entity(entity_type, str(entity_id), limit)
