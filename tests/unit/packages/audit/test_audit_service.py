"""
Unit tests for AuditService.
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from packages.audit.context import reset_audit_context, set_audit_context
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService, to_snapshot
from packages.billing.models.domain.plans import Plan


@pytest.fixture
def audit_service():
    return AuditService()


class TestToSnapshot:
    def test_model_is_json_safe(self, sample_plan: Plan):
        snapshot = to_snapshot(sample_plan)

        assert snapshot["name"] == "basic"
        assert Decimal(snapshot["monthly_price"]) == Decimal("1000.00")
        assert isinstance(snapshot["created_at"], str)

    def test_nested_models_in_dict(self, sample_plan: Plan):
        snapshot = to_snapshot({"plan": sample_plan, "amount": 3})

        assert snapshot["plan"]["name"] == "basic"
        assert snapshot["amount"] == 3

    def test_none(self):
        assert to_snapshot(None) is None


@pytest.mark.asyncio
class TestRecord:
    async def test_explicit_actor(self, audit_service):
        entry = await audit_service.record(
            AuditAction.INVOICE_VOIDED,
            "invoice",
            12,
            before={"status": "open"},
            after={"status": "void", "total": str(Decimal("10.00"))},
            actor="admin@example.com",
            ip_address="192.0.2.1",
        )

        assert entry.actor == "admin@example.com"
        assert entry.entity_id == "12"
        assert entry.before == {"status": "open"}
        assert entry.after["status"] == "void"
        assert entry.ip_address == "192.0.2.1"

    async def test_actor_falls_back_to_request_context(self, audit_service):
        tokens = set_audit_context("user-7", "198.51.100.4")
        try:
            entry = await audit_service.record(AuditAction.TOKENS_CONSUMED, "subscription", 3)
        finally:
            reset_audit_context(tokens)

        assert entry.actor == "user-7"
        assert entry.ip_address == "198.51.100.4"

    async def test_actor_defaults_to_system(self, audit_service):
        entry = await audit_service.record(AuditAction.SUBSCRIPTION_RENEWED, "subscription", 3)

        assert entry.actor == "system"
        assert entry.ip_address is None

    async def test_write_failure_is_swallowed(self, audit_service):
        with patch.object(
            audit_service.audit_repo,
            "create",
            AsyncMock(side_effect=RuntimeError("disk full")),
        ):
            entry = await audit_service.record(AuditAction.PLAN_UPDATED, "plan", 1)

        assert entry is None


@pytest.mark.asyncio
class TestListForEntity:
    async def test_oldest_first_and_scoped_to_entity(self, audit_service):
        await audit_service.record(AuditAction.INVOICE_CREATED, "invoice", 5)
        await audit_service.record(AuditAction.INVOICE_OPENED, "invoice", 5)
        await audit_service.record(AuditAction.INVOICE_CREATED, "invoice", 6)
        await audit_service.record(AuditAction.PLAN_CREATED, "plan", 5)

        entries = await audit_service.list_for_entity("invoice", 5)

        assert [e.action for e in entries] == [
            AuditAction.INVOICE_CREATED,
            AuditAction.INVOICE_OPENED,
        ]

    async def test_limit(self, audit_service):
        for _ in range(3):
            await audit_service.record(AuditAction.TOKENS_CONSUMED, "subscription", 9)

        assert len(await audit_service.list_for_entity("subscription", 9, limit=2)) == 2
