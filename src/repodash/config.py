"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TTL_MS = 30 * 60 * 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        GITHUB_TOKEN: Static token sent with every API request
        GITHUB_API_BASE: Base URL of the hosting API
        CACHE_TTL_MS: Cache time-to-live in milliseconds
        CACHE_DIR: Directory holding the durable cache database
        CACHE_MAX_BYTES: Durable store quota in bytes (0 disables it)
        BATCH_SIZE: Repositories loaded concurrently per batch
        REPOS_CONFIG: YAML file listing the dashboard repositories
        LOG_LEVEL: Logging level
        LOG_FILE: JSON Lines log file (console only when unset)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream API
    GITHUB_TOKEN: str | None = Field(default=None, description="GitHub API token")
    GITHUB_API_BASE: str = Field(
        default="https://api.github.com", description="GitHub API base URL"
    )
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Per-request HTTP timeout"
    )

    # Cache
    CACHE_TTL_MS: int = Field(
        default=DEFAULT_TTL_MS, gt=0, description="Cache time-to-live in milliseconds"
    )
    CACHE_DIR: Path = Field(default=Path(".cache"), description="Cache directory")
    CACHE_DB_NAME: str = Field(default="repodash.db", description="Cache database file")
    CACHE_NAMESPACE: str = Field(
        default="repodash", min_length=1, description="Durable key namespace"
    )
    CACHE_MAX_BYTES: int = Field(
        default=5 * 1024 * 1024, ge=0, description="Durable store quota (0 = unlimited)"
    )

    # Dashboard
    BATCH_SIZE: int = Field(
        default=3, ge=1, le=10, description="Repositories loaded per batch"
    )
    REPOS_CONFIG: Path = Field(
        default=Path("_config.yml"), description="Repositories configuration file"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    @field_validator("GITHUB_TOKEN")
    @classmethod
    def blank_token_is_none(cls, v: str | None) -> str | None:
        """Treat an empty token as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("GITHUB_API_BASE")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the API base URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("GITHUB_API_BASE must be an http(s) URL")
        return v.rstrip("/")

    @property
    def cache_db_path(self) -> Path:
        """Path of the durable cache database."""
        return self.CACHE_DIR / self.CACHE_DB_NAME

    @property
    def cache_max_bytes(self) -> int | None:
        """Durable quota, or None when disabled."""
        return self.CACHE_MAX_BYTES or None

    def ensure_directories(self) -> None:
        """Create the cache directory if it doesn't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | None]:
        """Return settings with the token redacted for display."""
        token = self.GITHUB_TOKEN
        if token is not None:
            token = f"{token[:4]}...{token[-4:]}" if len(token) > 12 else "***"

        return {
            "GITHUB_TOKEN": token,
            "GITHUB_API_BASE": self.GITHUB_API_BASE,
            "HTTP_TIMEOUT_SECONDS": self.HTTP_TIMEOUT_SECONDS,
            "CACHE_TTL_MS": self.CACHE_TTL_MS,
            "CACHE_DIR": str(self.CACHE_DIR),
            "CACHE_DB_NAME": self.CACHE_DB_NAME,
            "CACHE_NAMESPACE": self.CACHE_NAMESPACE,
            "CACHE_MAX_BYTES": self.CACHE_MAX_BYTES,
            "BATCH_SIZE": self.BATCH_SIZE,
            "REPOS_CONFIG": str(self.REPOS_CONFIG),
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    The TTL and every other value are fixed for the life of the process.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
