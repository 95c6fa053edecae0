"""Data models for offline batch synchronization."""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, Union, runtime_checkable

from .errors import ValidationFailureError

# Keys owned by the store; never accepted as client-writable fields.
RESERVED_KEYS = frozenset({"id", "version", "created_at", "updated_at"})

# Column ranges: ids are BIGINT, versions INTEGER
MAX_SERVER_ID = 2**63 - 1
MAX_VERSION = 2**31 - 1


class ConflictResolutionStrategy(str, Enum):
    """How to resolve a detected version conflict."""

    SERVER_WINS = "server_wins"  # Keep stored record, no mutation
    CLIENT_WINS = "client_wins"  # Client payload overwrites stored fields
    MERGE = "merge"  # Non-null client fields override, others kept


class SyncAction(str, Enum):
    """What happened to a successfully synced item."""

    CREATED = "created"
    UPDATED = "updated"


class AuditAction(str, Enum):
    """Audit event actions emitted by the sync engine."""

    CREATE = "create"
    UPDATE = "update"
    CONFLICT_RESOLVE = "conflict_resolve"


@dataclass
class SyncConfig:
    """Configuration for the sync engine."""

    # Limits
    max_batch_size: int = 500
    change_feed_page_cap: int = 1000

    # How far the final watermark trails the server clock, so writes that
    # were stamped but not yet committed during a pull are fetched again
    change_feed_lag_seconds: float = 0.0

    # Entity type used when a request does not name one
    default_entity_type: str = "supplier"

    @classmethod
    def from_settings(cls, settings) -> "SyncConfig":
        """Build from application settings."""
        return cls(
            max_batch_size=settings.sync_max_batch_size,
            change_feed_page_cap=settings.change_feed_page_cap,
            change_feed_lag_seconds=settings.change_feed_lag_seconds,
            default_entity_type=settings.default_entity_type,
        )


@runtime_checkable
class VersionedRecord(Protocol):
    """Minimal shape every syncable entity exposes.

    Conflict detection only relies on this; ``to_dict`` supplies the
    server snapshot placed on a ConflictRecord.
    """

    @property
    def server_id(self) -> Optional[int]: ...

    @property
    def version(self) -> int: ...

    def with_version(self, version: int) -> "VersionedRecord": ...

    def to_dict(self) -> dict: ...


@dataclass(frozen=True)
class SyncRecord:
    """A stored, versioned record of one entity type."""

    entity_type: str
    server_id: Optional[int] = None
    version: int = 1
    fields: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_version(self, version: int) -> "SyncRecord":
        """Return a copy of this record at another version."""
        return replace(self, version=version)

    def with_fields(self, fields: dict) -> "SyncRecord":
        """Return a copy of this record carrying a different payload."""
        return replace(self, fields=dict(fields))

    def to_dict(self) -> dict:
        """Flatten to the client-facing shape."""
        data = copy.deepcopy(self.fields)
        data.update({
            "id": self.server_id,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        })
        return data

    def to_feed_dict(self) -> dict:
        """Flatten for the change feed, tagging the entity type."""
        data = self.to_dict()
        data["entity_type"] = self.entity_type
        return data


@dataclass
class SyncBatchItem:
    """One unit of client-submitted work. Transient, never persisted."""

    local_id: Optional[str] = None
    server_id: Optional[int] = None
    client_version: int = 1
    fields: dict = field(default_factory=dict)

    @property
    def is_create(self) -> bool:
        return self.server_id is None

    @classmethod
    def from_dict(cls, data: Any) -> "SyncBatchItem":
        """Parse a wire item, raising ValidationFailureError if malformed."""
        if not isinstance(data, dict):
            raise ValidationFailureError("Sync item must be an object")

        local_id = data.get("local_id")
        server_id = data.get("id")

        if local_id is not None and not isinstance(local_id, str):
            raise ValidationFailureError("local_id must be a string", server_id=_int_or_none(server_id))
        if server_id is not None and not is_valid_server_id(server_id):
            raise ValidationFailureError(
                f"id must be null or an integer between 1 and {MAX_SERVER_ID}",
                local_id=local_id,
            )

        version = data.get("version", 1)
        if version is None:
            version = 1
        if not _is_int(version) or not 1 <= version <= MAX_VERSION:
            raise ValidationFailureError(
                f"version must be an integer between 1 and {MAX_VERSION}",
                local_id=local_id,
                server_id=server_id,
            )

        fields = data.get("fields", {})
        if fields is None:
            fields = {}
        if not isinstance(fields, dict):
            raise ValidationFailureError(
                "fields must be an object",
                local_id=local_id,
                server_id=server_id,
            )

        return cls(
            local_id=local_id,
            server_id=server_id,
            client_version=version,
            fields=dict(fields),
        )


@dataclass(frozen=True)
class Match:
    """Detector outcome: the client saw the current version."""

    version: int


@dataclass
class ConflictRecord:
    """A version mismatch between a client write and the stored record."""

    server_id: Optional[int]
    local_version: int
    server_version: int
    server_data: dict = field(default_factory=dict)
    client_data: dict = field(default_factory=dict)
    local_id: Optional[str] = None
    message: str = "Version conflict: server has been modified since last sync"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "server_id": self.server_id,
            "local_id": self.local_id,
            "local_version": self.local_version,
            "server_version": self.server_version,
            "server_data": self.server_data,
            "client_data": self.client_data,
            "message": self.message,
        }


DetectionResult = Union[Match, ConflictRecord]


@dataclass
class SyncSuccess:
    """A successfully created or updated item."""

    local_id: Optional[str]
    server_id: int
    version: int
    data: dict
    action: SyncAction

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "local_id": self.local_id,
            "server_id": self.server_id,
            "version": self.version,
            "data": self.data,
            "action": self.action.value,
        }


@dataclass
class SyncItemError:
    """An item that failed with an expected error."""

    message: str
    local_id: Optional[str] = None
    server_id: Optional[int] = None
    error_type: str = "error"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "local_id": self.local_id,
            "server_id": self.server_id,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class SyncBatchResult:
    """Aggregated outcome of one sync batch."""

    success: list[SyncSuccess] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)
    errors: list[SyncItemError] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    def counts(self) -> dict:
        """Bucket sizes for logging."""
        return {
            "success_count": len(self.success),
            "conflict_count": len(self.conflicts),
            "error_count": len(self.errors),
        }

    def to_dict(self) -> dict:
        """Convert to the wire response."""
        return {
            "success": [s.to_dict() for s in self.success],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ChangeSet:
    """Records changed since a watermark."""

    records: list[SyncRecord] = field(default_factory=list)
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    has_more: bool = False
    next_since: Optional[datetime] = None
    # Id half of the (updated_at, id) cursor; set only while has_more
    next_after_id: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        next_since = self.next_since or self.as_of
        return {
            "records": [r.to_feed_dict() for r in self.records],
            "as_of": self.as_of.isoformat(),
            "has_more": self.has_more,
            "next_since": next_since.isoformat(),
            "next_after_id": self.next_after_id,
        }


@dataclass
class AuditEvent:
    """A before/after snapshot waiting to be handed to the audit emitter."""

    action: AuditAction
    entity_type: str
    entity_id: Optional[int]
    old_values: Optional[dict]
    new_values: Optional[dict]
    actor: Optional[str]
    description: str = ""
    metadata: dict = field(default_factory=dict)


@runtime_checkable
class AuditEmitter(Protocol):
    """Receives before/after snapshots of every sync mutation."""

    async def log(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[int],
        old_values: Optional[dict],
        new_values: Optional[dict],
        actor: Optional[str],
        description: str = "",
        metadata: Optional[dict] = None,
    ) -> Optional[str]: ...


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_server_id(value: Any) -> bool:
    """True for an integer the store could have assigned as an id."""
    return _is_int(value) and 1 <= value <= MAX_SERVER_ID


def _int_or_none(value: Any) -> Optional[int]:
    return value if _is_int(value) else None
