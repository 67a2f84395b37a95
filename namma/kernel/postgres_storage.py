"""
PostgresStorage adapter for the Namma kernel.

Implements the KeyValueStorage protocol using Postgres as the backend.
Stores each named blob as one row in the kv_blobs table.
"""

from __future__ import annotations

import asyncpg

from namma.kernel.storage import KeyValueStorage, StorageError

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS kv_blobs (
    key        text PRIMARY KEY,
    value      text NOT NULL,
    updated_at timestamptz NOT NULL DEFAULT now()
)
"""


class PostgresStorage(KeyValueStorage):
    """
    Postgres-based storage for store and session blobs.

    Uses one table:
    - kv_blobs: key -> value, upserted on every write
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(cls, database_url: str) -> PostgresStorage:
        """Create a pool and make sure the table exists."""
        pool = await asyncpg.create_pool(database_url)
        storage = cls(pool)
        await storage.ensure_schema()
        return storage

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(CREATE_TABLE_SQL)

    async def get(self, key: str) -> str | None:
        """Fetch a blob. Returns None if not found."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT value FROM kv_blobs WHERE key = $1",
                    key,
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        """Upsert a blob."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO kv_blobs (key, value, updated_at)
                    VALUES ($1, $2, now())
                    ON CONFLICT (key)
                    DO UPDATE SET value = EXCLUDED.value, updated_at = now()
                    """,
                    key,
                    value,
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("DELETE FROM kv_blobs WHERE key = $1", key)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to delete {key!r}: {e}") from e

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()
