"""
Core types for the repository dashboard.

This module defines the fundamental data structures used throughout the system:
- Enums for resource kinds and cache entry states
- CacheKey: structured, collision-free cache key
- CacheEntry: cached payload with its refresh timestamp
- RepoRef: a configured repository
- Helper functions for timestamps
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import quote, unquote

import orjson

from repodash.exceptions import InvalidCacheKeyError, PersistCorruptError


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ResourceKind(str, Enum):
    """Kinds of upstream resources the dashboard caches."""

    REPO = "repo"
    COMMITS = "commits"
    BRANCHES = "branches"
    TAGS = "tags"
    RELEASES = "releases"
    ISSUES = "issues"
    README = "readme"
    CONTRIBUTORS = "contributors"
    COMMUNITY = "community"
    LANGUAGES = "languages"


class EntryState(str, Enum):
    """Lifecycle state of a single cache entry."""

    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


def _encode(value: str) -> str:
    return quote(value, safe="")


@dataclass(frozen=True)
class CacheKey:
    """Structured cache key.

    Every parameter that affects the upstream result (branch, page, page size)
    is part of the key, so differing queries never share an entry.
    """

    kind: ResourceKind
    owner: str
    name: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def create(
        cls,
        kind: ResourceKind | str,
        owner: str,
        name: str,
        **params: Any,
    ) -> CacheKey:
        """Create a key, normalising variant parameters.

        ``None`` values are dropped, values are stringified and parameters are
        sorted by name so call-site ordering never changes the key.
        """
        if not owner or not name:
            raise InvalidCacheKeyError(
                "Cache key requires owner and name",
                context={"owner": owner, "name": name},
            )
        normalized = tuple(
            sorted((k, str(v)) for k, v in params.items() if v is not None)
        )
        return cls(
            kind=ResourceKind(kind),
            owner=owner,
            name=name,
            params=normalized,
        )

    @property
    def repo(self) -> str:
        """owner/name of the repository this key belongs to."""
        return f"{self.owner}/{self.name}"

    def param(self, name: str, default: str | None = None) -> str | None:
        """Look up a variant parameter by name."""
        for k, v in self.params:
            if k == name:
                return v
        return default

    def serialize(self) -> str:
        """Deterministic string form, e.g. ``commits:acme/widget?branch=main&page=2``."""
        text = f"{self.kind.value}:{_encode(self.owner)}/{_encode(self.name)}"
        if self.params:
            query = "&".join(f"{_encode(k)}={_encode(v)}" for k, v in self.params)
            text = f"{text}?{query}"
        return text

    @classmethod
    def parse(cls, text: str) -> CacheKey:
        """Inverse of serialize()."""
        try:
            kind_part, rest = text.split(":", 1)
            path, _, query = rest.partition("?")
            owner, name = path.split("/", 1)
            params: dict[str, str] = {}
            if query:
                for pair in query.split("&"):
                    k, v = pair.split("=", 1)
                    params[unquote(k)] = unquote(v)
            # names taken by create() arguments
            reserved = params.keys() & {"kind", "owner", "name"}
            if reserved:
                raise ValueError(f"Reserved parameter names: {sorted(reserved)}")
            return cls.create(kind_part, unquote(owner), unquote(name), **params)
        except (ValueError, InvalidCacheKeyError) as e:
            raise InvalidCacheKeyError(
                f"Invalid cache key: {text!r}", context={"key": text}
            ) from e

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the time it was last refreshed."""

    key: str
    payload: Any  # JSON-compatible data or raw text
    stored_at: int  # ms since epoch

    def age_ms(self, now: int) -> int:
        """Milliseconds elapsed since the entry was stored."""
        return now - self.stored_at

    def is_fresh(self, now: int, ttl_ms: int) -> bool:
        """True while ``now - stored_at < ttl_ms``."""
        return self.age_ms(now) < ttl_ms

    def to_json(self) -> str:
        """Serialize for the durable store."""
        return orjson.dumps(
            {"payload": self.payload, "stored_at": self.stored_at}
        ).decode("utf-8")

    @classmethod
    def from_json(cls, key: str, text: str) -> CacheEntry:
        """Deserialize a durable value.

        Raises:
            PersistCorruptError: If the text is not a valid stored entry.
        """
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise PersistCorruptError(
                "Durable entry is not valid JSON", context={"key": key}
            ) from e

        if not isinstance(data, dict) or "payload" not in data:
            raise PersistCorruptError(
                "Durable entry has no payload", context={"key": key}
            )
        stored_at = data.get("stored_at")
        if not isinstance(stored_at, int) or isinstance(stored_at, bool):
            raise PersistCorruptError(
                "Durable entry has no valid stored_at", context={"key": key}
            )
        return cls(key=key, payload=data["payload"], stored_at=stored_at)


DEFAULT_BRANCH = "main"


@dataclass(frozen=True)
class RepoRef:
    """A repository listed in the dashboard configuration.

    branch is None when the repository's default branch should be used.
    """

    owner: str
    name: str
    branch: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, text: str, branch: str | None = None) -> RepoRef:
        """Parse ``owner/name``."""
        owner, sep, name = text.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Expected owner/name, got {text!r}")
        return cls(owner=owner, name=name, branch=branch)
