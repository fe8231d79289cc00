"""
Cache package.

This package provides:
- Durable key-value stores (kv_cache.py): SQLite-backed and in-memory
- CacheManager (manager.py): TTL cache with durable write-through and
  stale fallback when a live load fails
"""

from repodash.cache.base import DurableStore
from repodash.cache.kv_cache import InMemoryKVStore, SQLiteKVStore
from repodash.cache.manager import CacheManager, CacheStats, Loader

__all__ = [
    "CacheManager",
    "CacheStats",
    "DurableStore",
    "InMemoryKVStore",
    "Loader",
    "SQLiteKVStore",
]
