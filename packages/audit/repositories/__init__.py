"""Audit repositories."""

from packages.audit.repositories.audit_log_repository import AuditLogRepository

__all__ = ["AuditLogRepository"]
