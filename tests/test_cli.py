"""
Tests for the command-line interface.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import orjson
import pytest
from rich.console import Console
from typer.testing import CliRunner

from repodash import __version__
from repodash.cache import CacheManager, DurableStore, InMemoryKVStore, SQLiteKVStore
from repodash.cli import main as cli_main
from repodash.cli.main import app, build_cache
from repodash.config import Settings
from repodash.data.github_client import GitHubClient
from repodash.logging import setup_logging

from conftest import FakeGitHub

runner = CliRunner()


@pytest.fixture
def fake_api(github: FakeGitHub, monkeypatch: pytest.MonkeyPatch) -> FakeGitHub:
    """Route the CLI's GitHub client through the fake API on a wide console."""

    def from_settings(settings: Settings) -> GitHubClient:
        return GitHubClient(
            base_url=settings.GITHUB_API_BASE,
            transport=httpx.MockTransport(github.handler),
            retry_wait_max=0,
        )

    monkeypatch.setattr(GitHubClient, "from_settings", from_settings)
    monkeypatch.setattr(cli_main, "console", Console(width=200))
    return github


@pytest.fixture
def repos_file(temp_dir: Path) -> Path:
    path = temp_dir / "_config.yml"
    path.write_text("repositories:\n  - acme/good\n  - acme/missing\n")
    return path


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_redacts_token(mock_settings: Settings) -> None:
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "CACHE_TTL_MS" in result.output
    assert "ghp_test_fake_token_1234567890" not in result.output


def test_refresh_clears_cache(mock_settings: Settings) -> None:
    result = runner.invoke(app, ["refresh"])

    assert result.exit_code == 0
    assert "Cache cleared" in result.output
    assert mock_settings.cache_db_path.exists()


def test_detail_rejects_bad_repo_name(mock_settings: Settings) -> None:
    result = runner.invoke(app, ["detail", "not-a-repo"])
    assert result.exit_code == 2


def test_build_cache_uses_settings(mock_settings: Settings) -> None:
    cache = build_cache(mock_settings)
    assert isinstance(cache.store, SQLiteKVStore)
    assert cache.ttl_ms == 3_600_000
    assert cache.store.max_bytes == 1_048_576

    in_memory = build_cache(mock_settings, persist=False)
    assert isinstance(in_memory.store, InMemoryKVStore)


class TestShow:
    """The summary table over the fake API."""

    def test_failed_repo_row_and_retry_hint(
        self, mock_settings: Settings, fake_api: FakeGitHub, repos_file: Path
    ) -> None:
        fake_api.add_repo("acme", "good", stars=1234)

        result = runner.invoke(app, ["show", "--config", str(repos_file)])

        assert result.exit_code == 0, result.output
        assert "acme/good" in result.output
        assert "1,234" in result.output
        assert "acme/missing" in result.output
        assert "Failed" in result.output
        assert "404" in result.output
        assert "1 repositories failed to load" in result.output
        assert "to retry" in result.output
        assert mock_settings.cache_db_path.exists()

    def test_log_file_receives_load_failures(
        self,
        mock_settings: Settings,
        fake_api: FakeGitHub,
        repos_file: Path,
        temp_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        fake_api.add_repo("acme", "good")
        log_path = temp_dir / "logs" / "repodash.jsonl"
        monkeypatch.setenv("LOG_FILE", str(log_path))

        try:
            result = runner.invoke(app, ["show", "--config", str(repos_file)])
        finally:
            setup_logging()

        assert result.exit_code == 0, result.output
        records = [orjson.loads(line) for line in log_path.read_text().splitlines()]
        failures = [
            r for r in records if r["level"] == "WARNING" and r.get("repo") == "acme/missing"
        ]
        assert failures
        assert failures[0]["resource"] in {"repo", "commits"}

    def test_no_persist_uses_in_memory_store(
        self,
        mock_settings: Settings,
        fake_api: FakeGitHub,
        repos_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        fake_api.add_repo("acme", "good")
        fake_api.add_repo("acme", "missing")
        stores: list[DurableStore] = []

        def recording_build_cache(settings: Settings, persist: bool = True) -> CacheManager:
            cache = build_cache(settings, persist=persist)
            stores.append(cache.store)
            return cache

        monkeypatch.setattr(cli_main, "build_cache", recording_build_cache)

        result = runner.invoke(app, ["show", "--config", str(repos_file), "--no-persist"])

        assert result.exit_code == 0, result.output
        assert "failed to load" not in result.output
        assert [type(s) for s in stores] == [InMemoryKVStore]
        assert not mock_settings.cache_db_path.exists()


class TestDetail:
    """The detail command over the fake API."""

    def test_branch_and_page_options(
        self, mock_settings: Settings, fake_api: FakeGitHub
    ) -> None:
        fake_api.add_repo("acme", "widget", default_branch="main")

        result = runner.invoke(app, ["detail", "acme/widget", "--branch", "dev", "--page", "2"])

        assert result.exit_code == 0, result.output
        assert "Commits on dev (page 2)" in result.output
        assert "widget-" in result.output
        assert fake_api.queries("/repos/acme/widget/commits") == [
            {"sha": "dev", "page": "2", "per_page": "10"}
        ]

    def test_default_branch_from_repository(
        self, mock_settings: Settings, fake_api: FakeGitHub
    ) -> None:
        fake_api.add_repo("acme", "widget", default_branch="trunk")

        result = runner.invoke(app, ["detail", "acme/widget"])

        assert result.exit_code == 0, result.output
        assert "Commits on trunk (page 1)" in result.output

    def test_unavailable_repository_exits_with_error(
        self, mock_settings: Settings, fake_api: FakeGitHub
    ) -> None:
        result = runner.invoke(app, ["detail", "acme/missing"])
        assert result.exit_code == 1

    def test_page_must_be_positive(self, mock_settings: Settings) -> None:
        result = runner.invoke(app, ["detail", "acme/widget", "--page", "0"])
        assert result.exit_code == 2
