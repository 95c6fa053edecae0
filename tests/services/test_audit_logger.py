"""Tests for the audit logger."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ledgersync.services.audit_logger import AuditLogger, get_audit_logger
from ledgersync.sync.models import AuditAction, AuditEmitter


def _supabase(configured=True, result=None, error=None):
    supabase = MagicMock()
    supabase.is_configured = configured
    supabase.insert = AsyncMock(
        return_value=result or {"data": None, "error": None},
        side_effect=error,
    )
    supabase.close = AsyncMock()
    return supabase


async def _log(audit: AuditLogger, **overrides):
    kwargs = dict(
        action=AuditAction.UPDATE,
        entity_type="supplier",
        entity_id=42,
        old_values={"name": "Acme", "version": 3},
        new_values={"name": "Acme Ltd", "version": 4},
        actor="user-7",
        description="Supplier updated via sync",
        metadata={"local_id": "L1"},
    )
    kwargs.update(overrides)
    return await audit.log(**kwargs)


class TestAuditLogger:
    """Tests for AuditLogger.log."""

    def test_is_an_audit_emitter(self):
        """Test AuditLogger fits the emitter protocol."""
        assert isinstance(AuditLogger(supabase=_supabase()), AuditEmitter)

    @pytest.mark.asyncio
    async def test_persists_event(self):
        """Test events are inserted into audit_logs."""
        supabase = _supabase()
        audit = AuditLogger(supabase=supabase)

        audit_id = await _log(audit)

        assert audit_id is not None
        table, row = supabase.insert.await_args.args
        assert table == "audit_logs"
        assert row["id"] == audit_id
        assert row["action"] == "update"
        assert row["entity_type"] == "supplier"
        assert row["entity_id"] == 42
        assert row["user_id"] == "user-7"
        assert row["old_values"]["version"] == 3
        assert row["new_values"]["version"] == 4
        assert row["metadata"] == {"local_id": "L1"}

    @pytest.mark.asyncio
    async def test_string_action_and_no_actor(self):
        """Test plain action names and anonymous actors."""
        supabase = _supabase()
        audit = AuditLogger(supabase=supabase)

        await _log(audit, action="conflict_resolve", actor=None, metadata=None)

        _, row = supabase.insert.await_args.args
        assert row["action"] == "conflict_resolve"
        assert row["user_id"] is None
        assert row["metadata"] == {}

    @pytest.mark.asyncio
    async def test_not_configured_skips_insert(self):
        """Test unconfigured sinks only log."""
        supabase = _supabase(configured=False)
        audit = AuditLogger(supabase=supabase)

        assert await _log(audit) is None
        supabase.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insert_error_returns_none(self):
        """Test a rejected insert is reported as None."""
        supabase = _supabase(result={"data": None, "error": "permission denied"})
        audit = AuditLogger(supabase=supabase)

        assert await _log(audit) is None

    @pytest.mark.asyncio
    async def test_exceptions_are_swallowed(self):
        """Test audit failures never raise."""
        supabase = _supabase(error=RuntimeError("boom"))
        audit = AuditLogger(supabase=supabase)

        assert await _log(audit) is None

    @pytest.mark.asyncio
    async def test_close(self):
        """Test close releases the sink client."""
        supabase = _supabase()
        audit = AuditLogger(supabase=supabase)

        await audit.close()
        supabase.close.assert_awaited_once()


class TestGetAuditLogger:
    """Tests for the global accessor."""

    def test_returns_singleton(self):
        """Test the same instance is returned."""
        assert get_audit_logger() is get_audit_logger()
