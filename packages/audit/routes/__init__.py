"""Audit API routes."""

from packages.audit.routes import audit

__all__ = ["audit"]
