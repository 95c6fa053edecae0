"""PostgreSQL record store backed by an asyncpg connection pool.

All syncable entities share one ``sync_records`` table. Ids come from a
BIGSERIAL sequence, so concurrent creators never compute the same id, and
every write is a single ``UPDATE ... WHERE version = $n`` statement.
"""

import json
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

import asyncpg
import structlog

from ledgersync.sync.errors import StoreFailureError
from ledgersync.sync.models import MAX_SERVER_ID, SyncRecord
from .base import RecordStore

logger = structlog.get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sync_records (
    id BIGSERIAL PRIMARY KEY,
    entity_type TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
    fields JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);
CREATE INDEX IF NOT EXISTS idx_sync_records_entity_updated
    ON sync_records (entity_type, updated_at, id);
CREATE INDEX IF NOT EXISTS idx_sync_records_updated
    ON sync_records (updated_at, id);
"""

_COLUMNS = "id, entity_type, version, fields, created_at, updated_at"

# Connection bound to the transaction running in the current task
_current_connection: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
    "ledgersync_pg_connection", default=None
)


class PostgresRecordStore(RecordStore):
    """RecordStore backed by PostgreSQL.

    Example usage:
        ```python
        store = PostgresRecordStore("postgresql://localhost/ledger")
        await store.ensure_schema()

        async with store.transaction():
            record = await store.create("supplier", {"name": "Acme"})
        ```
    """

    def __init__(
        self,
        database_url: str,
        min_size: int = 1,
        max_size: int = 10,
    ):
        """Initialize the store.

        Args:
            database_url: PostgreSQL connection URL.
            min_size: Minimum pool size.
            max_size: Maximum pool size.
        """
        if not database_url:
            raise ValueError("database_url is required for the PostgreSQL record store")
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None
        self._log = logger.bind(component="postgres_store")

    async def _get_pool(self) -> asyncpg.Pool:
        """Get or create the connection pool."""
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.database_url,
                    min_size=self.min_size,
                    max_size=self.max_size,
                )
            except (asyncpg.PostgresError, OSError) as e:
                self._log.error("Failed to create connection pool", error=str(e))
                raise StoreFailureError(f"connect failed: {e}") from e
            self._log.info("Created database connection pool")
        return self._pool

    async def connect(self) -> None:
        await self._get_pool()

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            self._log.info("Closed database connection pool")

    async def ensure_schema(self) -> None:
        """Create the records table and indexes if they do not exist."""
        async with self._connection("ensure_schema") as conn:
            await conn.execute(SCHEMA_SQL)
        self._log.info("Schema ensured", table="sync_records")

    @asynccontextmanager
    async def transaction(self):
        if _current_connection.get() is not None:
            # Nested scopes join the outer transaction
            yield
            return

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            token = _current_connection.set(conn)
            try:
                async with conn.transaction():
                    yield
            finally:
                _current_connection.reset(token)

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Yield the transaction's connection, or a pooled one outside a transaction.

        Driver errors are translated to StoreFailureError.
        """
        try:
            conn = _current_connection.get()
            if conn is not None:
                yield conn
            else:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self._log.error(f"{operation} failed", error=str(e))
            raise StoreFailureError(f"{operation} failed: {e}") from e

    async def find_by_id(self, entity_type: str, server_id: int) -> Optional[SyncRecord]:
        async with self._connection("find_by_id") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM sync_records
                WHERE entity_type = $1 AND id = $2
                """,
                entity_type,
                server_id,
            )
        return _row_to_record(row) if row else None

    async def create(self, entity_type: str, fields: dict) -> SyncRecord:
        async with self._connection("create") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO sync_records (entity_type, version, fields)
                VALUES ($1, 1, $2::jsonb)
                RETURNING {_COLUMNS}
                """,
                entity_type,
                json.dumps(fields),
            )
        return _row_to_record(row)

    async def conditional_update(
        self,
        entity_type: str,
        server_id: int,
        expected_version: int,
        new_fields: dict,
    ) -> Optional[SyncRecord]:
        async with self._connection("conditional_update") as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE sync_records
                SET fields = $4::jsonb,
                    version = version + 1,
                    updated_at = clock_timestamp()
                WHERE entity_type = $1 AND id = $2 AND version = $3
                RETURNING {_COLUMNS}
                """,
                entity_type,
                server_id,
                expected_version,
                json.dumps(new_fields),
            )
        return _row_to_record(row) if row else None

    async def changed_since(
        self,
        entity_types: Optional[list[str]],
        since: Optional[datetime],
        limit: int,
        after_id: Optional[int] = None,
    ) -> list[SyncRecord]:
        async with self._connection("changed_since") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM sync_records
                WHERE ($1::text[] IS NULL OR entity_type = ANY($1::text[]))
                  AND ($2::timestamptz IS NULL
                       OR (updated_at, id) > ($2::timestamptz, $4::bigint))
                ORDER BY updated_at, id
                LIMIT $3
                """,
                entity_types,
                since,
                limit,
                MAX_SERVER_ID if after_id is None else after_id,
            )
        return [_row_to_record(row) for row in rows]


def _row_to_record(row) -> SyncRecord:
    fields = row["fields"]
    if isinstance(fields, str):
        fields = json.loads(fields)
    return SyncRecord(
        entity_type=row["entity_type"],
        server_id=row["id"],
        version=row["version"],
        fields=fields or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
