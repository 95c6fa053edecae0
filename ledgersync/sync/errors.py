"""Error taxonomy for the sync engine.

Expected errors are contained to a single batch item (or a single resolve
request). Anything else, including StoreFailureError, aborts the batch.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync operations."""

    pass


class ExpectedSyncError(SyncError):
    """An anticipated failure that is reported rather than propagated."""

    error_type = "error"

    def __init__(
        self,
        message: str,
        local_id: Optional[str] = None,
        server_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.local_id = local_id
        self.server_id = server_id


class RecordNotFoundError(ExpectedSyncError):
    """Raised when an update or resolve targets a nonexistent server id."""

    error_type = "not_found"


class ValidationFailureError(ExpectedSyncError):
    """Raised when an item or resolve payload is malformed."""

    error_type = "validation"


class BatchTooLargeError(ValidationFailureError):
    """Raised when a batch exceeds the configured item limit."""

    pass


class UnknownEntityTypeError(ValidationFailureError):
    """Raised when a request names an entity type that is not syncable."""

    pass


class InvalidStrategyError(ExpectedSyncError):
    """Raised when a resolution strategy name is not recognised."""

    error_type = "invalid_strategy"


class ResolutionConflictError(ExpectedSyncError):
    """Raised when another writer changed the record while it was being resolved."""

    error_type = "conflict"


class StoreFailureError(SyncError):
    """Raised for unexpected persistence-layer faults."""

    pass
