"""Audit services."""

from packages.audit.services.audit_service import AuditService

__all__ = ["AuditService"]
