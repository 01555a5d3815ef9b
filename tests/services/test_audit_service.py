"""
Unit tests for AuditService.
"""

from uuid import uuid4

import pytest

from setup_assistant.schemas.domain import EntityKind
from setup_assistant.services.audit_service import AuditService


class TestLogBatch:
    """Tests for audit entries."""

    @pytest.mark.asyncio
    async def test_writes_entry(self, store, team_id) -> None:
        ids = [uuid4(), uuid4()]

        written = await AuditService(store).log_batch(
            team_id, EntityKind.RECEIVABLES, ids, source="plan.xlsx", error_count=1, user_id="user-7"
        )

        assert written is True
        entry = store.audit_logs[0]
        assert entry["team_id"] == team_id
        assert entry["action"] == "bulk_create"
        assert entry["entity_type"] == "receivable"
        assert entry["entity_count"] == 2
        assert entry["source"] == "plan.xlsx"
        assert entry["user_id"] == "user-7"
        assert entry["details"]["ids"] == [str(i) for i in ids]
        assert entry["details"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, store, team_id) -> None:
        store.fail_audit = True

        written = await AuditService(store).log_batch(team_id, EntityKind.EXPENSES, [uuid4()])

        assert written is False
        assert store.audit_logs == []
