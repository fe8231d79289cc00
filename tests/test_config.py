"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from repodash.config import DEFAULT_TTL_MS, Settings, clear_settings_cache, get_settings


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        settings = get_settings()

        assert settings.GITHUB_TOKEN == "ghp_test_fake_token_1234567890"
        assert settings.CACHE_TTL_MS == 3_600_000
        assert settings.CACHE_MAX_BYTES == 1_048_576
        assert settings.BATCH_SIZE == 2
        assert settings.LOG_LEVEL == "DEBUG"

    def test_defaults_without_env(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.CACHE_TTL_MS == DEFAULT_TTL_MS == 1_800_000
        assert settings.GITHUB_TOKEN is None
        assert settings.GITHUB_API_BASE == "https://api.github.com"
        assert settings.BATCH_SIZE == 3
        assert settings.REPOS_CONFIG == Path("_config.yml")
        assert settings.LOG_FILE is None

    def test_trailing_slash_stripped(self, mock_env_vars: dict[str, str]) -> None:
        assert get_settings().GITHUB_API_BASE == "https://api.github.test"

    def test_blank_token_is_none(self) -> None:
        with patch.dict(os.environ, {"GITHUB_TOKEN": "  "}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.GITHUB_TOKEN is None

    @pytest.mark.parametrize("ttl", ["0", "-5"])
    def test_ttl_must_be_positive(self, ttl: str) -> None:
        with patch.dict(os.environ, {"CACHE_TTL_MS": ttl}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_batch_size_bounds(self) -> None:
        with patch.dict(os.environ, {"BATCH_SIZE": "0"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_api_base_must_be_http(self) -> None:
        with patch.dict(os.environ, {"GITHUB_API_BASE": "ftp://example"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestSettingsHelpers:
    """Tests for derived settings."""

    def test_cache_db_path(self, mock_settings: Settings, temp_dir: Path) -> None:
        assert mock_settings.cache_db_path == temp_dir / "cache" / "repodash.db"
        assert (temp_dir / "cache").is_dir()

    def test_zero_quota_disables_limit(self) -> None:
        with patch.dict(os.environ, {"CACHE_MAX_BYTES": "0"}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.cache_max_bytes is None

    def test_redacted_display_hides_token(self, mock_env_vars: dict[str, str]) -> None:
        display = get_settings().redacted_display()

        assert display["GITHUB_TOKEN"] == "ghp_...7890"
        assert "fake" not in str(display["GITHUB_TOKEN"])
        assert display["CACHE_TTL_MS"] == 3_600_000

    def test_log_file_from_env(self, temp_dir: Path) -> None:
        path = temp_dir / "logs" / "repodash.jsonl"
        with patch.dict(os.environ, {"LOG_FILE": str(path)}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.LOG_FILE == path
        assert settings.redacted_display()["LOG_FILE"] == str(path)

    def test_settings_are_cached(self, mock_env_vars: dict[str, str]) -> None:
        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first
