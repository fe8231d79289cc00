"""
Pytest configuration and fixtures for repository dashboard tests.
"""

from __future__ import annotations

import asyncio
import os
from collections import Counter
from pathlib import Path
from typing import Any, AsyncGenerator, Generator
from unittest.mock import patch

import httpx
import pytest

from repodash.cache import CacheManager, InMemoryKVStore
from repodash.config import Settings, clear_settings_cache

TTL_MS = 30 * 60 * 1000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeGitHub:
    """MockTransport handler serving canned responses per path."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, dict[str, Any]]] = {}
        self.calls: Counter[str] = Counter()
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add_repo(
        self, owner: str, name: str, stars: int = 1, default_branch: str = "main"
    ) -> None:
        base = f"/repos/{owner}/{name}"
        info = {
            "full_name": f"{owner}/{name}",
            "stargazers_count": stars,
            "forks_count": 0,
            "default_branch": default_branch,
        }
        commits = [{"sha": f"{name}-sha", "commit": {"message": "init"}}]
        self.routes[base] = (200, {"json": info})
        self.routes[f"{base}/commits"] = (200, {"json": commits})

    def queries(self, path: str) -> list[dict[str, str]]:
        return [dict(r.url.params) for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[path] += 1
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.005)
        finally:
            self.in_flight -= 1
        if path in self.routes:
            status, kwargs = self.routes[path]
            return httpx.Response(status, **kwargs)
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
async def cache(
    memory_store: InMemoryKVStore, clock: FakeClock
) -> AsyncGenerator[CacheManager, None]:
    """An initialized CacheManager over an in-memory durable store."""
    manager = CacheManager(memory_store, ttl_ms=TTL_MS, clock=clock)
    await manager.init()
    yield manager
    await manager.close()


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "GITHUB_TOKEN": "ghp_test_fake_token_1234567890",
        "GITHUB_API_BASE": "https://api.github.test/",
        "CACHE_TTL_MS": "3600000",
        "CACHE_DIR": ".test_cache",
        "CACHE_MAX_BYTES": "1048576",
        "BATCH_SIZE": "2",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(
    mock_env_vars: dict[str, str], temp_dir: Path
) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration.

    Uses temp_dir for the cache directory.
    """
    with patch.dict(os.environ, {"CACHE_DIR": str(temp_dir / "cache")}):
        clear_settings_cache()
        from repodash.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
