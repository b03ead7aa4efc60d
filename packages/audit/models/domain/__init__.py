"""Domain models for audit."""

from packages.audit.models.domain.audit_log import (
    AuditAction,
    AuditLogEntry,
    AuditLogCreateModel,
)

__all__ = ["AuditAction", "AuditLogEntry", "AuditLogCreateModel"]
