"""Database models for audit."""

from packages.audit.models.database.audit_log import AuditLogEntity

__all__ = ["AuditLogEntity"]
