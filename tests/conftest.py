"""Shared fixtures for ledgersync tests."""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from ledgersync.storage.memory import InMemoryRecordStore
from ledgersync.sync.models import SyncConfig


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (fast, critical path - included in CI)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Keep tests on the in-memory store and away from a real audit sink
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_KEY", None)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SYNC_MAX_BATCH_SIZE", "500")


class TickingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 15, 9, 30, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class RecordingAudit:
    """Audit emitter that keeps every event it is handed."""

    def __init__(self, fail: bool = False):
        self.events: list[dict] = []
        self.fail = fail

    async def log(
        self,
        action,
        entity_type,
        entity_id,
        old_values,
        new_values,
        actor,
        description="",
        metadata=None,
    ):
        if self.fail:
            raise RuntimeError("audit sink down")
        self.events.append({
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_values": old_values,
            "new_values": new_values,
            "actor": actor,
            "description": description,
            "metadata": metadata,
        })
        return f"audit-{len(self.events)}"

    def actions(self) -> list[str]:
        return [e["action"].value for e in self.events]


@pytest.fixture
def clock():
    """Clock shared by the store and the change feed."""
    return TickingClock()


@pytest.fixture
def memory_store(clock):
    """Empty in-memory record store."""
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def audit():
    """Recording audit emitter."""
    return RecordingAudit()


@pytest.fixture
def failing_audit():
    """Audit emitter whose sink is down."""
    return RecordingAudit(fail=True)


@pytest.fixture
def sync_config():
    """Sync configuration with small limits."""
    return SyncConfig(max_batch_size=10, change_feed_page_cap=3)


@pytest.fixture
def supplier_item():
    """Factory for supplier batch items."""
    def _make(local_id="L1", server_id=None, version=1, **fields):
        fields.setdefault("name", "Acme Dairy")
        return {
            "local_id": local_id,
            "id": server_id,
            "version": version,
            "fields": fields,
        }
    return _make
