"""Process-local record store.

Used when no database is configured and throughout the test suite. A single
asyncio lock is held for the lifetime of a transaction, which gives each
batch an exclusive scope; rollback restores a snapshot taken on entry.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from ledgersync.sync.models import MAX_SERVER_ID, SyncRecord
from .base import RecordStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed RecordStore with snapshot rollback."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._records: dict[tuple[str, int], SyncRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        self._clock = clock or _utcnow
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"memory_store_txn_{id(self)}", default=False
        )
        self.log = logger.bind(component="memory_store")

    @asynccontextmanager
    async def transaction(self):
        if self._in_transaction.get():
            # Nested scopes join the outer transaction
            yield
            return

        async with self._lock:
            snapshot = dict(self._records)
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self._records = snapshot
                self.log.debug("Transaction rolled back", restored=len(snapshot))
                raise
            finally:
                self._in_transaction.reset(token)

    @asynccontextmanager
    async def _guard(self):
        if self._in_transaction.get():
            yield
        else:
            async with self._lock:
                yield

    async def find_by_id(self, entity_type: str, server_id: int) -> Optional[SyncRecord]:
        async with self._guard():
            record = self._records.get((entity_type, server_id))
            return _detached(record) if record else None

    async def create(self, entity_type: str, fields: dict) -> SyncRecord:
        async with self._guard():
            now = self._clock()
            # Ids are never reused, even after a rollback, like a database sequence
            server_id = self._next_id
            self._next_id += 1
            record = SyncRecord(
                entity_type=entity_type,
                server_id=server_id,
                version=1,
                fields=copy.deepcopy(fields),
                created_at=now,
                updated_at=now,
            )
            self._records[(entity_type, server_id)] = record
            return _detached(record)

    async def conditional_update(
        self,
        entity_type: str,
        server_id: int,
        expected_version: int,
        new_fields: dict,
    ) -> Optional[SyncRecord]:
        async with self._guard():
            current = self._records.get((entity_type, server_id))
            if current is None or current.version != expected_version:
                return None
            record = SyncRecord(
                entity_type=entity_type,
                server_id=server_id,
                version=expected_version + 1,
                fields=copy.deepcopy(new_fields),
                created_at=current.created_at,
                updated_at=self._clock(),
            )
            self._records[(entity_type, server_id)] = record
            return _detached(record)

    async def changed_since(
        self,
        entity_types: Optional[list[str]],
        since: Optional[datetime],
        limit: int,
        after_id: Optional[int] = None,
    ) -> list[SyncRecord]:
        cursor = None
        if since is not None:
            cursor = (since, MAX_SERVER_ID if after_id is None else after_id)

        async with self._guard():
            matches = [
                r for r in self._records.values()
                if (entity_types is None or r.entity_type in entity_types)
                and (cursor is None or (r.updated_at, r.server_id) > cursor)
            ]
        matches.sort(key=lambda r: (r.updated_at, r.server_id))
        return [_detached(r) for r in matches[:limit]]

    def __len__(self) -> int:
        return len(self._records)


def _detached(record: SyncRecord) -> SyncRecord:
    """Copy a record so callers never share its payload with the store."""
    return record.with_fields(copy.deepcopy(record.fields))
