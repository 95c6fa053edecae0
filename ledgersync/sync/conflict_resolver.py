"""Conflict resolution for previously detected version conflicts."""

from typing import TYPE_CHECKING, Any, Optional

import structlog

from .audit import emit_audit_events
from .entities import get_entity_definition
from .errors import (
    InvalidStrategyError,
    RecordNotFoundError,
    ResolutionConflictError,
    ValidationFailureError,
)
from .models import (
    AuditAction,
    AuditEmitter,
    AuditEvent,
    ConflictResolutionStrategy,
    SyncConfig,
    SyncRecord,
    is_valid_server_id,
)

if TYPE_CHECKING:
    from ledgersync.storage.base import RecordStore

logger = structlog.get_logger()

_DESCRIPTIONS = {
    ConflictResolutionStrategy.SERVER_WINS: "Conflict resolved: server wins",
    ConflictResolutionStrategy.CLIENT_WINS: "Conflict resolved: client wins",
    ConflictResolutionStrategy.MERGE: "Conflict resolved: merged",
}


def merge_fields(server_fields: dict, client_fields: dict, skip_nulls: bool = True) -> dict:
    """Overlay client fields onto server fields, key by key.

    Args:
        server_fields: Stored payload.
        client_fields: Client payload.
        skip_nulls: When True a null client value keeps the server value;
            when False it clears the field.

    Returns:
        A new merged dict. Neither input is modified.
    """
    merged = dict(server_fields)
    for key, value in client_fields.items():
        if value is None and skip_nulls:
            continue
        merged[key] = value
    return merged


def parse_strategy(strategy: Any) -> ConflictResolutionStrategy:
    """Map a strategy name onto the enum.

    Raises:
        InvalidStrategyError: If the name is not recognised.
    """
    if isinstance(strategy, ConflictResolutionStrategy):
        return strategy
    try:
        return ConflictResolutionStrategy(strategy)
    except ValueError:
        raise InvalidStrategyError(
            f"Invalid conflict resolution strategy: {strategy}"
        ) from None


class ConflictResolver:
    """Produces the new authoritative record for a conflict.

    Strategies:
    - SERVER_WINS: Stored record kept as is, version unchanged
    - CLIENT_WINS: Every client key overwrites the stored field, nulls included
    - MERGE: Non-null client values override, everything else kept
    """

    def __init__(
        self,
        store: "RecordStore",
        audit: Optional[AuditEmitter] = None,
        config: Optional[SyncConfig] = None,
    ):
        """Initialize conflict resolver.

        Args:
            store: Record store holding the authoritative records.
            audit: Receives a snapshot of every resolution.
            config: Sync configuration (for the default entity type).
        """
        self.store = store
        self.audit = audit
        self.config = config or SyncConfig()
        self.log = logger.bind(component="conflict_resolver")

    async def resolve(
        self,
        server_id: int,
        client_data: dict,
        strategy: ConflictResolutionStrategy | str,
        actor: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> SyncRecord:
        """Resolve a conflict on one record.

        Args:
            server_id: Record the conflict was reported for.
            client_data: The client's payload.
            strategy: server_wins, client_wins or merge.
            actor: User performing the resolution.
            entity_type: Entity type of the record.

        Returns:
            The resulting stored record.

        Raises:
            InvalidStrategyError: Unknown strategy; nothing is read or written.
            RecordNotFoundError: No record with this id.
            ValidationFailureError: Malformed client_data.
            ResolutionConflictError: Another writer changed the record meanwhile.
        """
        strategy = parse_strategy(strategy)
        definition = get_entity_definition(entity_type or self.config.default_entity_type)
        if not is_valid_server_id(server_id):
            raise ValidationFailureError(f"Invalid server id: {server_id}")
        if not isinstance(client_data, dict):
            raise ValidationFailureError("client_data must be an object", server_id=server_id)

        events: list[AuditEvent] = []

        async with self.store.transaction():
            stored = await self.store.find_by_id(definition.name, server_id)
            if stored is None:
                raise RecordNotFoundError(
                    f"{definition.name.capitalize()} {server_id} not found",
                    server_id=server_id,
                )

            if strategy == ConflictResolutionStrategy.SERVER_WINS:
                record = stored
            else:
                cleaned = definition.validate_fields(client_data, server_id=server_id)
                merged = merge_fields(
                    stored.fields,
                    cleaned,
                    skip_nulls=strategy == ConflictResolutionStrategy.MERGE,
                )
                record = await self.store.conditional_update(
                    definition.name,
                    server_id,
                    stored.version,
                    definition.apply_derived(merged),
                )
                if record is None:
                    raise ResolutionConflictError(
                        f"{definition.name.capitalize()} {server_id} changed during resolution",
                        server_id=server_id,
                    )

            events.append(AuditEvent(
                action=AuditAction.CONFLICT_RESOLVE,
                entity_type=definition.name,
                entity_id=server_id,
                old_values=stored.to_dict(),
                new_values=record.to_dict(),
                actor=actor,
                description=_DESCRIPTIONS[strategy],
                metadata={"strategy": strategy.value},
            ))

        self.log.info(
            "Conflict resolved",
            entity_type=definition.name,
            server_id=server_id,
            strategy=strategy.value,
            version=record.version,
        )
        await emit_audit_events(self.audit, events)
        return record
