"""
GitHub REST client for the read-only requests the dashboard makes.

Every method is a live retrieval suitable as a cache loader: it either
returns decoded JSON (or text for the rendered README) or raises
LoadFailedError. Timeouts, connection errors and 5xx responses are retried
with exponential backoff; rate-limit responses are not.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from repodash.config import Settings
from repodash.exceptions import LoadFailedError
from repodash.logging import get_logger
from repodash.types import DEFAULT_BRANCH, CacheKey, ResourceKind

logger = get_logger(__name__)

GITHUB_API_BASE = "https://api.github.com"
ACCEPT_JSON = "application/vnd.github+json"
ACCEPT_HTML = "application/vnd.github.v3.html"

# Unauthenticated clients get 60 requests/hour; stay well under burst limits.
RATE_LIMIT_REQUESTS = 10
RATE_LIMIT_PERIOD = 1.0  # seconds

MAX_ATTEMPTS = 3


class RateLimiter:
    """Simple sliding-window rate limiter."""

    def __init__(self, max_requests: int, period: float) -> None:
        self.max_requests = max_requests
        self.period = period
        self._timestamps: list[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until we can make a request within rate limits."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()

            self._timestamps = [ts for ts in self._timestamps if now - ts < self.period]

            if len(self._timestamps) >= self.max_requests:
                sleep_time = self.period - (now - self._timestamps[0])
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                    self._timestamps = self._timestamps[1:]

            self._timestamps.append(loop.time())


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class GitHubClient:
    """Async client for the GitHub REST API.

    Sends ``Authorization: token <TOKEN>`` when a token is configured; no
    other authentication is supported.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait_max: float = 10.0,
    ) -> None:
        """Initialize the client.

        Args:
            token: Optional static API token.
            base_url: API base URL.
            timeout: Per-request timeout in seconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
            retry_wait_max: Upper bound of the backoff between retries.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._retry_wait_max = retry_wait_max
        self._rate_limiter = RateLimiter(RATE_LIMIT_REQUESTS, RATE_LIMIT_PERIOD)
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubClient:
        return cls(
            token=settings.GITHUB_TOKEN,
            base_url=settings.GITHUB_API_BASE,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with proper headers."""
        if self._client is None:
            headers = {"Accept": ACCEPT_JSON, "User-Agent": "repodash"}
            if self.token:
                headers["Authorization"] = f"token {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self, path: str, params: dict[str, Any] | None, accept: str
    ) -> httpx.Response:
        await self._rate_limiter.acquire()
        client = await self._get_client()
        response = await client.get(path, params=params, headers={"Accept": accept})
        response.raise_for_status()
        return response

    async def _fetch(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        accept: str = ACCEPT_JSON,
    ) -> httpx.Response:
        """GET path with rate limiting and retries.

        Raises:
            LoadFailedError: On any non-2xx status or transport failure.
        """
        url = f"{self.base_url}{path}"
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_retryable),
                stop=stop_after_attempt(MAX_ATTEMPTS),
                wait=wait_exponential(multiplier=1, min=0, max=self._retry_wait_max),
                reraise=True,
            ):
                with attempt:
                    return await self._send(path, params, accept)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (403, 429):
                logger.warning(
                    "Rate limited by GitHub",
                    url=url,
                    status_code=status,
                    reset=e.response.headers.get("X-RateLimit-Reset"),
                )
            raise LoadFailedError(
                f"Request failed with status {status}: {url}",
                context={"url": url, "status_code": status},
            ) from e
        except httpx.HTTPError as e:
            raise LoadFailedError(
                f"Request failed: {url}",
                context={"url": url, "error": str(e)},
            ) from e
        raise AssertionError("unreachable")  # pragma: no cover

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._fetch(path, params)
        try:
            return response.json()
        except ValueError as e:
            raise LoadFailedError(
                f"Invalid JSON from {path}", context={"url": str(response.url)}
            ) from e

    async def get_repo(self, owner: str, name: str) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{name}")

    async def get_commits(
        self,
        owner: str,
        name: str,
        branch: str = DEFAULT_BRANCH,
        page: int = 1,
        per_page: int = 10,
    ) -> list[dict[str, Any]]:
        return await self._get_json(
            f"/repos/{owner}/{name}/commits",
            {"sha": branch, "page": page, "per_page": per_page},
        )

    async def get_branches(self, owner: str, name: str) -> list[dict[str, Any]]:
        return await self._get_json(f"/repos/{owner}/{name}/branches")

    async def get_tags(self, owner: str, name: str) -> list[dict[str, Any]]:
        return await self._get_json(f"/repos/{owner}/{name}/tags")

    async def get_releases(
        self, owner: str, name: str, per_page: int = 5
    ) -> list[dict[str, Any]]:
        return await self._get_json(
            f"/repos/{owner}/{name}/releases", {"per_page": per_page}
        )

    async def get_issues(
        self, owner: str, name: str, per_page: int = 5
    ) -> list[dict[str, Any]]:
        return await self._get_json(
            f"/repos/{owner}/{name}/issues", {"per_page": per_page}
        )

    async def get_readme_html(self, owner: str, name: str) -> str:
        """Rendered README as HTML text."""
        response = await self._fetch(f"/repos/{owner}/{name}/readme", accept=ACCEPT_HTML)
        return response.text

    async def get_contributors(self, owner: str, name: str) -> list[dict[str, Any]]:
        return await self._get_json(f"/repos/{owner}/{name}/contributors")

    async def get_community_profile(self, owner: str, name: str) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{name}/community/profile")

    async def get_languages(self, owner: str, name: str) -> dict[str, int]:
        return await self._get_json(f"/repos/{owner}/{name}/languages")

    def loader_for(self, key: CacheKey) -> Callable[[], Awaitable[Any]]:
        """Zero-argument loader performing the request that key describes."""
        owner, name = key.owner, key.name

        def _int(param: str, default: int) -> int:
            value = key.param(param)
            return int(value) if value is not None else default

        if key.kind is ResourceKind.REPO:
            return lambda: self.get_repo(owner, name)
        if key.kind is ResourceKind.COMMITS:
            return lambda: self.get_commits(
                owner,
                name,
                branch=key.param("branch") or DEFAULT_BRANCH,
                page=_int("page", 1),
                per_page=_int("per_page", 10),
            )
        if key.kind is ResourceKind.BRANCHES:
            return lambda: self.get_branches(owner, name)
        if key.kind is ResourceKind.TAGS:
            return lambda: self.get_tags(owner, name)
        if key.kind is ResourceKind.RELEASES:
            return lambda: self.get_releases(owner, name, per_page=_int("per_page", 5))
        if key.kind is ResourceKind.ISSUES:
            return lambda: self.get_issues(owner, name, per_page=_int("per_page", 5))
        if key.kind is ResourceKind.README:
            return lambda: self.get_readme_html(owner, name)
        if key.kind is ResourceKind.CONTRIBUTORS:
            return lambda: self.get_contributors(owner, name)
        if key.kind is ResourceKind.COMMUNITY:
            return lambda: self.get_community_profile(owner, name)
        if key.kind is ResourceKind.LANGUAGES:
            return lambda: self.get_languages(owner, name)
        raise ValueError(f"No loader for resource kind {key.kind!r}")
