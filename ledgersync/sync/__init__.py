"""Offline batch synchronization with optimistic concurrency."""

from .change_feed import ChangeFeed
from .conflict_detector import ConflictDetector, detect_conflict
from .conflict_resolver import (
    ConflictResolver,
    merge_fields,
    parse_strategy,
)
from .entities import (
    ENTITY_DEFINITIONS,
    EntityDefinition,
    entity_types,
    generate_code,
    get_entity_definition,
)
from .errors import (
    BatchTooLargeError,
    ExpectedSyncError,
    InvalidStrategyError,
    RecordNotFoundError,
    ResolutionConflictError,
    StoreFailureError,
    SyncError,
    UnknownEntityTypeError,
    ValidationFailureError,
)
from .models import (
    AuditAction,
    AuditEmitter,
    AuditEvent,
    ChangeSet,
    ConflictRecord,
    ConflictResolutionStrategy,
    Match,
    SyncAction,
    SyncBatchItem,
    SyncBatchResult,
    SyncConfig,
    SyncItemError,
    SyncRecord,
    SyncSuccess,
    VersionedRecord,
)
from .orchestrator import SyncOrchestrator
from .service import SyncService

__all__ = [
    # Models
    "AuditAction",
    "AuditEmitter",
    "AuditEvent",
    "ChangeSet",
    "ConflictRecord",
    "ConflictResolutionStrategy",
    "Match",
    "SyncAction",
    "SyncBatchItem",
    "SyncBatchResult",
    "SyncConfig",
    "SyncItemError",
    "SyncRecord",
    "SyncSuccess",
    "VersionedRecord",
    # Errors
    "SyncError",
    "ExpectedSyncError",
    "RecordNotFoundError",
    "ValidationFailureError",
    "BatchTooLargeError",
    "UnknownEntityTypeError",
    "InvalidStrategyError",
    "ResolutionConflictError",
    "StoreFailureError",
    # Entities
    "ENTITY_DEFINITIONS",
    "EntityDefinition",
    "entity_types",
    "generate_code",
    "get_entity_definition",
    # Engine
    "ConflictDetector",
    "detect_conflict",
    "ConflictResolver",
    "merge_fields",
    "parse_strategy",
    "SyncOrchestrator",
    "ChangeFeed",
    "SyncService",
]
