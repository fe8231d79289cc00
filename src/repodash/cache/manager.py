"""
Cache manager mediating every outbound data request.

fetch(key, loader) returns, in order of preference:
1. the in-memory payload, if it was stored less than ttl_ms ago;
2. the result of loader(), written through to memory and the durable store;
3. the last durable payload for the key, of any age, if the loader failed.

If none of these is available NoDataAvailableError is raised, chained from
the loader's failure. Quota exhaustion on the durable store clears the whole
store and is logged, never raised. Corrupt durable entries are deleted and
treated as absent.

Concurrent calls for the same key are not deduplicated unless the manager is
built with single_flight=True; each concurrent miss runs its own loader.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from repodash.cache.base import DurableStore
from repodash.exceptions import (
    InvalidCacheKeyError,
    NoDataAvailableError,
    PersistCorruptError,
    QuotaExceededError,
)
from repodash.logging import get_logger
from repodash.types import CacheEntry, CacheKey, EntryState, now_ms

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]
Clock = Callable[[], int]


@dataclass
class CacheStats:
    """Counters tracked by CacheManager."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    writes: int = 0
    fallbacks: int = 0
    failures: int = 0
    quota_clears: int = 0
    corrupt: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _key_str(key: CacheKey | str) -> str:
    if isinstance(key, CacheKey):
        return key.serialize()
    if not isinstance(key, str) or not key:
        raise InvalidCacheKeyError("Cache key must be a non-empty string", context={"key": key})
    return key


class CacheManager:
    """TTL cache with a write-through durable store and stale fallback."""

    def __init__(
        self,
        store: DurableStore,
        ttl_ms: int,
        clock: Clock = now_ms,
        single_flight: bool = False,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Durable store entries are persisted to.
            ttl_ms: Maximum age of an entry served without reloading.
            clock: Returns the current time in milliseconds.
            single_flight: Share one loader call between concurrent misses
                on the same key.
        """
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self.store = store
        self.ttl_ms = ttl_ms
        self.single_flight = single_flight
        self.stats = CacheStats()
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> CacheManager:
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def init(self) -> None:
        """Open the durable store and re-seed memory with its fresh entries."""
        async with self._init_lock:
            if self._initialized:
                return
            await self.store.init()

            now = self._clock()
            seeded = 0
            for key in await self.store.keys():
                entry = await self._read_durable(key)
                if entry is not None and entry.is_fresh(now, self.ttl_ms):
                    self._memory[key] = entry
                    seeded += 1
            self._initialized = True

        logger.info("Cache initialized", seeded=seeded, ttl_ms=self.ttl_ms)

    async def close(self) -> None:
        """Close the durable store."""
        await self.store.close()
        self._initialized = False

    def peek(self, key: CacheKey | str) -> CacheEntry | None:
        """Return the in-memory entry for key, fresh or not."""
        return self._memory.get(_key_str(key))

    def state(self, key: CacheKey | str) -> EntryState:
        """Lifecycle state of key as seen by the in-memory table."""
        entry = self.peek(key)
        if entry is None:
            return EntryState.ABSENT
        if entry.is_fresh(self._clock(), self.ttl_ms):
            return EntryState.FRESH
        return EntryState.STALE

    async def fetch(self, key: CacheKey | str, loader: Loader) -> Any:
        """Return the payload for key, loading it if the cached copy is stale.

        Args:
            key: Structured key or its serialized string.
            loader: Zero-argument coroutine function performing the live fetch.

        Returns:
            The cached, freshly loaded or stale fallback payload.

        Raises:
            NoDataAvailableError: If the loader failed and nothing is persisted.
        """
        key_str = _key_str(key)
        if not self._initialized:
            await self.init()

        entry = self._memory.get(key_str)
        if entry is not None and entry.is_fresh(self._clock(), self.ttl_ms):
            self.stats.hits += 1
            logger.debug("Cache hit", key=key_str)
            return entry.payload

        self.stats.misses += 1
        if not self.single_flight:
            return await self._load(key_str, loader)

        pending = self._inflight.get(key_str)
        if pending is None:
            pending = asyncio.ensure_future(self._load(key_str, loader))
            self._inflight[key_str] = pending
            pending.add_done_callback(lambda fut: self._load_done(key_str, fut))
        return await asyncio.shield(pending)

    def _load_done(self, key_str: str, fut: asyncio.Future[Any]) -> None:
        # Mark the outcome retrieved even if every awaiter was cancelled.
        if self._inflight.get(key_str) is fut:
            del self._inflight[key_str]
        if not fut.cancelled():
            fut.exception()

    async def _load(self, key_str: str, loader: Loader) -> Any:
        try:
            payload = await loader()
        except Exception as e:
            logger.warning("Load failed, trying durable fallback", key=key_str, error=str(e))
            return await self._fallback(key_str, e)

        self.stats.loads += 1
        entry = CacheEntry(key=key_str, payload=payload, stored_at=self._clock())
        self._memory[key_str] = entry
        await self._persist(entry)
        logger.info("Loaded and cached", key=key_str)
        return payload

    async def _persist(self, entry: CacheEntry) -> None:
        try:
            await self.store.set(entry.key, entry.to_json())
        except QuotaExceededError as e:
            self.stats.quota_clears += 1
            try:
                await self.store.clear()
            except Exception as clear_error:
                logger.warning(
                    "Durable store quota exceeded and clearing it failed",
                    key=entry.key,
                    error=str(clear_error),
                )
                return
            logger.warning(
                "Durable store quota exceeded, cleared durable store",
                key=entry.key,
                error=str(e),
            )
            return
        except Exception as e:
            logger.warning("Durable write failed", key=entry.key, error=str(e))
            return
        self.stats.writes += 1
        logger.debug("Persisted entry", key=entry.key)

    async def _fallback(self, key_str: str, cause: Exception) -> Any:
        try:
            entry = await self._read_durable(key_str)
        except Exception as e:
            logger.warning("Durable read failed", key=key_str, error=str(e))
            entry = None

        if entry is None:
            self.stats.failures += 1
            raise NoDataAvailableError(
                f"No data available for {key_str}",
                cause=cause,
                context={"key": key_str, "error": str(cause)},
            ) from cause

        self.stats.fallbacks += 1
        logger.warning(
            "Serving stale durable entry",
            key=key_str,
            age_ms=entry.age_ms(self._clock()),
        )
        return entry.payload

    async def _read_durable(self, key_str: str) -> CacheEntry | None:
        """Read and decode a durable entry; corrupt entries are deleted."""
        raw = await self.store.get(key_str)
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(key_str, raw)
        except PersistCorruptError as e:
            self.stats.corrupt += 1
            logger.warning("Dropping corrupt durable entry", key=key_str, error=str(e))
            await self.store.delete(key_str)
            return None

    async def invalidate(self, key: CacheKey | str) -> bool:
        """Evict a single key from memory and the durable store."""
        key_str = _key_str(key)
        if not self._initialized:
            await self.init()
        in_memory = self._memory.pop(key_str, None) is not None
        in_store = await self.store.delete(key_str)
        return in_memory or in_store

    async def invalidate_all(self) -> None:
        """Clear every entry from memory and the durable store."""
        if not self._initialized:
            await self.init()
        count = len(self._memory)
        self._memory.clear()
        await self.store.clear()
        logger.info("Cache invalidated", entries=count)
