"""
Base classes for caching.

DurableStore is the key-value persistence contract the CacheManager writes
through to: string keys, string (serialized) values, a namespace prefix and
an optional byte quota. Implementations raise QuotaExceededError when a
write would exceed the quota.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class DurableStore(ABC):
    """Abstract interface for durable key-value stores."""

    def __init__(self, namespace: str = "repodash", max_bytes: int | None = None) -> None:
        self.namespace = namespace
        self.max_bytes = max_bytes

    async def init(self) -> None:
        """Open the store. No-op by default."""

    async def close(self) -> None:
        """Release store resources. No-op by default."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a value from the store."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Set a value in the store.

        Raises:
            QuotaExceededError: If the write would exceed max_bytes.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value from the store."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete every value in this store's namespace."""
        ...

    @abstractmethod
    async def keys(self) -> list[str]:
        """List every key in this store's namespace."""
        ...

    @abstractmethod
    async def size_bytes(self) -> int:
        """Total size of the stored values in bytes."""
        ...
