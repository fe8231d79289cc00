"""
Custom exception hierarchy for the repository dashboard.

All exceptions inherit from RepodashError, which provides optional context
for structured error handling and logging.

Only NoDataAvailableError is meant to cross the CacheManager boundary. The
other cache conditions are absorbed and logged by the manager.
"""

from __future__ import annotations

from typing import Any


class RepodashError(Exception):
    """Base exception for all dashboard errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(RepodashError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Repository entry without owner or name
        - Repositories file that is not a mapping
    """

    pass


class LoadFailedError(RepodashError):
    """Raised when a live retrieval from the hosting API fails.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
    """

    @property
    def status_code(self) -> int | None:
        """HTTP status code of the failed request, if any."""
        return self.context.get("status_code")


class CacheError(RepodashError):
    """Base class for cache-layer errors."""

    pass


class NoDataAvailableError(CacheError):
    """Raised when the loader failed and no durable fallback exists.

    The original loader failure is chained (``__cause__``) and exposed as
    ``cause``.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.cause = cause


# Callers written against the FetchFailed name keep working.
FetchFailedError = NoDataAvailableError


class QuotaExceededError(CacheError):
    """Raised by a durable store when a write would exceed its size quota.

    Context should include:
        - key: The key being written
        - size: Size of the store after the attempted write
        - max_bytes: The configured quota
    """

    pass


class PersistCorruptError(CacheError):
    """Raised when a durable entry cannot be deserialized."""

    pass


class InvalidCacheKeyError(CacheError):
    """Raised for empty or unparseable cache keys."""

    pass
