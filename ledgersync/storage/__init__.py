"""Record store implementations."""

from typing import Optional

from ledgersync.config import Settings, StoreBackend, get_settings

from .base import RecordStore
from .memory import InMemoryRecordStore
from .postgres import PostgresRecordStore


def create_record_store(settings: Optional[Settings] = None) -> RecordStore:
    """Build the record store selected by configuration.

    Args:
        settings: Application settings (loaded from the environment if None).

    Returns:
        PostgresRecordStore when a database URL is set, otherwise an
        InMemoryRecordStore.
    """
    settings = settings or get_settings()
    if settings.store_backend == StoreBackend.POSTGRES:
        return PostgresRecordStore(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
    return InMemoryRecordStore()


__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "create_record_store",
]
