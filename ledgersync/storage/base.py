"""Record store interface consumed by the sync engine."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Optional

from ledgersync.sync.models import SyncRecord


class RecordStore(ABC):
    """Durable source of truth for versioned records.

    Implementations must make ``conditional_update`` atomic with respect to
    other writers: the version comparison and the write are one step.
    """

    async def connect(self) -> None:
        """Open underlying resources. Optional."""

    async def close(self) -> None:
        """Release underlying resources. Optional."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Exclusive transaction scope.

        Every store call made inside the scope commits together when the
        scope exits normally and rolls back when it exits with an exception.
        """

    @abstractmethod
    async def find_by_id(self, entity_type: str, server_id: int) -> Optional[SyncRecord]:
        """Fetch the current stored record, or None."""

    @abstractmethod
    async def create(self, entity_type: str, fields: dict) -> SyncRecord:
        """Persist a new record at version 1 with a store-assigned id."""

    @abstractmethod
    async def conditional_update(
        self,
        entity_type: str,
        server_id: int,
        expected_version: int,
        new_fields: dict,
    ) -> Optional[SyncRecord]:
        """Replace the payload if the stored version equals ``expected_version``.

        Returns:
            The written record at ``expected_version + 1``, or None when the
            record is missing or its version has moved.
        """

    @abstractmethod
    async def changed_since(
        self,
        entity_types: Optional[list[str]],
        since: Optional[datetime],
        limit: int,
        after_id: Optional[int] = None,
    ) -> list[SyncRecord]:
        """Records past the ``(since, after_id)`` cursor, ordered by (updated_at, id).

        With ``after_id`` None this is ``updated_at > since``; otherwise the
        row comparison ``(updated_at, id) > (since, after_id)``, so records
        sharing ``since`` with a larger id are still returned.
        """
