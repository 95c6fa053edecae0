"""Sync service facade wiring the engine components to one store."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from .change_feed import ChangeFeed
from .conflict_resolver import ConflictResolver
from .models import (
    AuditEmitter,
    ChangeSet,
    ConflictResolutionStrategy,
    SyncBatchResult,
    SyncConfig,
    SyncRecord,
)
from .orchestrator import SyncOrchestrator

if TYPE_CHECKING:
    from ledgersync.storage.base import RecordStore


class SyncService:
    """Handles synchronization of offline data from client devices.

    Shares one record store, audit emitter and configuration between the
    orchestrator, the conflict resolver and the change feed.
    """

    def __init__(
        self,
        store: "RecordStore",
        audit: Optional[AuditEmitter] = None,
        config: Optional[SyncConfig] = None,
    ):
        self.store = store
        self.audit = audit
        self.config = config or SyncConfig()
        self.orchestrator = SyncOrchestrator(store, audit, self.config)
        self.resolver = ConflictResolver(store, audit, self.config)
        self.feed = ChangeFeed(store, self.config)

    async def start(self) -> None:
        """Open the store."""
        await self.store.connect()

    async def stop(self) -> None:
        """Close the store."""
        await self.store.close()

    async def sync_batch(
        self,
        items: list[Any],
        actor: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> SyncBatchResult:
        return await self.orchestrator.sync_batch(items, actor, entity_type)

    async def resolve(
        self,
        server_id: int,
        client_data: dict,
        strategy: ConflictResolutionStrategy | str,
        actor: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> SyncRecord:
        return await self.resolver.resolve(server_id, client_data, strategy, actor, entity_type)

    async def changes_since(
        self,
        since: Optional[datetime] = None,
        entity_type: Optional[str] = None,
        after_id: Optional[int] = None,
    ) -> ChangeSet:
        return await self.feed.changes_since(since, entity_type, after_id)

    def status(self) -> dict:
        """Server clock, for clients checking skew before picking a watermark."""
        return {
            "server_time": datetime.now(timezone.utc).isoformat(),
            "status": "online",
        }
