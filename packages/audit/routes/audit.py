"""
Audit log API routes (read-only).
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from common.core.otel_axiom_exporter import trace_span
from packages.audit.models.domain.audit_log import AuditLogEntry
from packages.audit.services.audit_service import AuditService

router = APIRouter()


def get_audit_service() -> AuditService:
    return AuditService()


@router.get("/{entity_type}/{entity_id}", response_model=List[AuditLogEntry])
@trace_span
async def list_entity_audit_log(
    entity_type: str,
    entity_id: str,
    limit: int = Query(100, ge=1, le=500),
    audit_service: AuditService = Depends(get_audit_service),
):
    """Audit entries for one entity, oldest first."""
    return await audit_service.list_for_entity(entity_type, entity_id, limit=limit)
