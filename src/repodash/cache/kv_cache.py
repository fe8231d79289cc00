"""
Key-value store implementations.

- SQLiteKVStore: async SQLite-backed durable store using aiosqlite.
  Survives process restarts; entries are partitioned by namespace.
- InMemoryKVStore: dict-based store for tests and non-persistent runs.

Both enforce an optional byte quota over the stored values. A write that
would push the total over the quota is rejected with QuotaExceededError and
leaves the store unchanged.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from repodash.cache.base import DurableStore
from repodash.exceptions import QuotaExceededError
from repodash.logging import get_logger
from repodash.types import utc_now

logger = get_logger(__name__)


def _value_size(value: str) -> int:
    return len(value.encode("utf-8"))


class SQLiteKVStore(DurableStore):
    """Durable store in a single SQLite table keyed by (namespace, key)."""

    def __init__(
        self,
        db_path: str | Path,
        namespace: str = "repodash",
        max_bytes: int | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file.
            namespace: Partition of the table owned by this store.
            max_bytes: Quota over the namespace's values, None for unlimited.
        """
        super().__init__(namespace=namespace, max_bytes=max_bytes)
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the database and create the schema."""
        if self._db is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                size INTEGER NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (namespace, key)
            )
        """)
        await self._db.commit()

        logger.debug(
            "KV store initialized", db_path=str(self.db_path), namespace=self.namespace
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteKVStore not initialized. Call init() first.")
        return self._db

    async def get(self, key: str) -> str | None:
        db = self._conn()
        async with db.execute(
            "SELECT value FROM kv WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        ) as cursor:
            row = await cursor.fetchone()
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        """Upsert value, checking the quota and writing under one lock.

        Raises:
            QuotaExceededError: If the namespace would exceed max_bytes.
        """
        db = self._conn()
        size = _value_size(value)

        async with self._write_lock:
            if self.max_bytes is not None:
                async with db.execute(
                    "SELECT COALESCE(SUM(size), 0) FROM kv WHERE namespace = ? AND key != ?",
                    (self.namespace, key),
                ) as cursor:
                    row = await cursor.fetchone()
                total = (row[0] if row else 0) + size
                if total > self.max_bytes:
                    raise QuotaExceededError(
                        "Durable store quota exceeded",
                        context={"key": key, "size": total, "max_bytes": self.max_bytes},
                    )

            await db.execute(
                """
                INSERT INTO kv (namespace, key, value, size, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value = excluded.value,
                    size = excluded.size,
                    updated_at = excluded.updated_at
                """,
                (self.namespace, key, value, size, utc_now().isoformat()),
            )
            await db.commit()

    async def delete(self, key: str) -> bool:
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "DELETE FROM kv WHERE namespace = ? AND key = ?", (self.namespace, key)
            )
            await db.commit()
        return cursor.rowcount > 0

    async def clear(self) -> None:
        db = self._conn()
        async with self._write_lock:
            await db.execute("DELETE FROM kv WHERE namespace = ?", (self.namespace,))
            await db.commit()

    async def keys(self) -> list[str]:
        db = self._conn()
        async with db.execute(
            "SELECT key FROM kv WHERE namespace = ? ORDER BY key", (self.namespace,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [row["key"] for row in rows]

    async def size_bytes(self) -> int:
        db = self._conn()
        async with db.execute(
            "SELECT COALESCE(SUM(size), 0) FROM kv WHERE namespace = ?",
            (self.namespace,),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0


class InMemoryKVStore(DurableStore):
    """Dict-backed store with the same quota semantics as SQLiteKVStore."""

    def __init__(self, namespace: str = "repodash", max_bytes: int | None = None) -> None:
        super().__init__(namespace=namespace, max_bytes=max_bytes)
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            total = sum(
                _value_size(v) for k, v in self._data.items() if k != key
            ) + _value_size(value)
            if total > self.max_bytes:
                raise QuotaExceededError(
                    "Durable store quota exceeded",
                    context={"key": key, "size": total, "max_bytes": self.max_bytes},
                )
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def clear(self) -> None:
        self._data.clear()

    async def keys(self) -> list[str]:
        return sorted(self._data)

    async def size_bytes(self) -> int:
        return sum(_value_size(v) for v in self._data.values())
