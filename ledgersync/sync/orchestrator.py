"""Batch synchronization of offline client mutations."""

import copy
from typing import TYPE_CHECKING, Any, Optional

import structlog

from .audit import emit_audit_events
from .conflict_detector import ConflictDetector
from .conflict_resolver import merge_fields
from .entities import EntityDefinition, get_entity_definition
from .errors import (
    BatchTooLargeError,
    ExpectedSyncError,
    RecordNotFoundError,
    StoreFailureError,
)
from .models import (
    AuditAction,
    AuditEmitter,
    AuditEvent,
    ConflictRecord,
    SyncAction,
    SyncBatchItem,
    SyncBatchResult,
    SyncConfig,
    SyncItemError,
    SyncSuccess,
)

if TYPE_CHECKING:
    from ledgersync.storage.base import RecordStore

logger = structlog.get_logger()


class SyncOrchestrator:
    """Applies a batch of client mutations against the record store.

    Features:
    - Create path with store-assigned ids and collision-resistant codes
    - Version-checked update path using a conditional write
    - Conflicts and expected errors reported per item
    - One transaction per batch, rolled back only on unexpected failures

    A batch whose items only succeed, conflict or fail with expected errors
    commits. Unrelated items are never rolled back because of one item's
    conflict or validation error.
    """

    def __init__(
        self,
        store: "RecordStore",
        audit: Optional[AuditEmitter] = None,
        config: Optional[SyncConfig] = None,
        detector: Optional[ConflictDetector] = None,
    ):
        """Initialize sync orchestrator.

        Args:
            store: Record store to read and write.
            audit: Receives before/after snapshots after commit.
            config: Sync configuration.
            detector: Conflict detector (a default one is created if None).
        """
        self.store = store
        self.audit = audit
        self.config = config or SyncConfig()
        self.detector = detector or ConflictDetector()
        self.log = logger.bind(component="sync_orchestrator")

    async def sync_batch(
        self,
        items: list[Any],
        actor: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> SyncBatchResult:
        """Process a batch of client mutations in submission order.

        Args:
            items: Wire items (dicts) or SyncBatchItem instances.
            actor: User performing the sync.
            entity_type: Entity type every item in the batch belongs to.

        Returns:
            Success, conflict and error buckets.

        Raises:
            UnknownEntityTypeError: If the entity type is not syncable.
            BatchTooLargeError: If the batch exceeds the configured limit.
            StoreFailureError: If an unexpected failure aborted the batch.
                Nothing written by the batch is kept.
        """
        definition = get_entity_definition(entity_type or self.config.default_entity_type)
        if len(items) > self.config.max_batch_size:
            raise BatchTooLargeError(
                f"Batch of {len(items)} items exceeds the limit of {self.config.max_batch_size}"
            )

        result = SyncBatchResult()
        pending_audit: list[AuditEvent] = []

        try:
            async with self.store.transaction():
                for raw in items:
                    await self._sync_item(raw, definition, actor, result, pending_audit)
        except Exception as e:
            self.log.error(
                "Sync failed",
                actor=actor,
                entity_type=definition.name,
                items=len(items),
                error=str(e),
            )
            if isinstance(e, StoreFailureError):
                raise
            raise StoreFailureError(f"Sync operation failed: {e}") from e

        self.log.info(
            "Sync completed",
            actor=actor,
            entity_type=definition.name,
            **result.counts(),
        )
        await emit_audit_events(self.audit, pending_audit)
        return result

    async def _sync_item(
        self,
        raw: Any,
        definition: EntityDefinition,
        actor: Optional[str],
        result: SyncBatchResult,
        pending_audit: list[AuditEvent],
    ) -> None:
        """Process one item, recording expected failures in ``result.errors``."""
        local_id, server_id = _peek_ids(raw)
        try:
            item = raw if isinstance(raw, SyncBatchItem) else SyncBatchItem.from_dict(raw)

            if item.is_create:
                result.success.append(
                    await self._create(item, definition, actor, pending_audit)
                )
                return

            outcome = await self._update(item, definition, actor, pending_audit)
            if isinstance(outcome, ConflictRecord):
                result.conflicts.append(outcome)
            else:
                result.success.append(outcome)

        except ExpectedSyncError as e:
            result.errors.append(SyncItemError(
                message=e.message,
                local_id=e.local_id if e.local_id is not None else local_id,
                server_id=e.server_id if e.server_id is not None else server_id,
                error_type=e.error_type,
            ))

    async def _create(
        self,
        item: SyncBatchItem,
        definition: EntityDefinition,
        actor: Optional[str],
        pending_audit: list[AuditEvent],
    ) -> SyncSuccess:
        fields = definition.validate_fields(item.fields, creating=True, local_id=item.local_id)
        record = await self.store.create(definition.name, definition.prepare_create(fields))

        pending_audit.append(AuditEvent(
            action=AuditAction.CREATE,
            entity_type=definition.name,
            entity_id=record.server_id,
            old_values=None,
            new_values=record.to_dict(),
            actor=actor,
            description=f"{definition.name.capitalize()} created via sync",
            metadata={"local_id": item.local_id},
        ))

        return SyncSuccess(
            local_id=item.local_id,
            server_id=record.server_id,
            version=record.version,
            data=record.to_dict(),
            action=SyncAction.CREATED,
        )

    async def _update(
        self,
        item: SyncBatchItem,
        definition: EntityDefinition,
        actor: Optional[str],
        pending_audit: list[AuditEvent],
    ) -> SyncSuccess | ConflictRecord:
        stored = await self.store.find_by_id(definition.name, item.server_id)
        if stored is None:
            raise RecordNotFoundError(
                f"{definition.name.capitalize()} {item.server_id} not found",
                local_id=item.local_id,
                server_id=item.server_id,
            )

        fields = definition.validate_fields(
            item.fields, local_id=item.local_id, server_id=item.server_id
        )

        outcome = self.detector.detect(
            stored, item.client_version, client_data=item.fields, local_id=item.local_id
        )
        if isinstance(outcome, ConflictRecord):
            self.log.debug(
                "Version conflict",
                server_id=item.server_id,
                local_version=outcome.local_version,
                server_version=outcome.server_version,
            )
            return outcome

        new_fields = definition.apply_derived(merge_fields(stored.fields, fields))
        updated = await self.store.conditional_update(
            definition.name, item.server_id, stored.version, new_fields
        )

        if updated is None:
            # Another writer moved the version between the read and the write
            current = await self.store.find_by_id(definition.name, item.server_id)
            if current is None:
                raise RecordNotFoundError(
                    f"{definition.name.capitalize()} {item.server_id} not found",
                    local_id=item.local_id,
                    server_id=item.server_id,
                )
            return ConflictRecord(
                server_id=item.server_id,
                local_id=item.local_id,
                local_version=item.client_version,
                server_version=current.version,
                server_data=current.to_dict(),
                client_data=copy.deepcopy(item.fields),
            )

        pending_audit.append(AuditEvent(
            action=AuditAction.UPDATE,
            entity_type=definition.name,
            entity_id=updated.server_id,
            old_values=stored.to_dict(),
            new_values=updated.to_dict(),
            actor=actor,
            description=f"{definition.name.capitalize()} updated via sync",
            metadata={"local_id": item.local_id},
        ))

        return SyncSuccess(
            local_id=item.local_id,
            server_id=updated.server_id,
            version=updated.version,
            data=updated.to_dict(),
            action=SyncAction.UPDATED,
        )


def _peek_ids(raw: Any) -> tuple[Optional[str], Optional[int]]:
    """Best-effort ids for error reporting, before the item is validated."""
    if isinstance(raw, SyncBatchItem):
        return raw.local_id, raw.server_id
    if isinstance(raw, dict):
        local_id = raw.get("local_id")
        server_id = raw.get("id")
        return (
            local_id if isinstance(local_id, str) else None,
            server_id if isinstance(server_id, int) and not isinstance(server_id, bool) else None,
        )
    return None, None
