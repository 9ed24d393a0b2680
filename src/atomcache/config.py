"""
Configuration management using pydantic-settings.

Loads configuration from ATOMCACHE_* environment variables and .env files
and turns it into store backends and clean-up policies.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from atomcache.cache.policies import CleanUpPolicy, CombinedPolicy, MaxEntriesPolicy, RetentionPolicy
from atomcache.cache.registry import BackendConfig, DatabaseBackend, FileBackend, NullBackend
from atomcache.core.exceptions import ValidationError
from atomcache.core.validation import validate_identifier


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        STORE_COUNT: Number of isolated stores
        BACKEND: Backend of every store (file, database or null)
        CACHE_DIR: Root directory of the stores
        DB_FILE_NAME: SQLite file name under CACHE_DIR
        TABLE_NAMES: Table name per store index, padded with cache_<i>
        RETENTION_MS: Clean-up removes atoms older than this
        MAX_ENTRIES: Clean-up keeps at most this many atoms per store
        FETCH_TIMEOUT: HTTP timeout in seconds
        REFRESH_WORKERS: Background refresh threads per coordinator
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_prefix="ATOMCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Stores
    STORE_COUNT: int = Field(default=1, ge=1, le=64, description="Number of isolated stores")
    BACKEND: Literal["file", "database", "null"] = Field(
        default="database", description="Backend of every store"
    )
    CACHE_DIR: Path = Field(
        default=Path.home() / ".atomcache", description="Root directory of the stores"
    )
    DB_FILE_NAME: str = Field(default="cache.db", description="SQLite file name")
    TABLE_NAMES: list[str] = Field(default_factory=list, description="Table name per store")

    # Clean-up
    RETENTION_MS: int | None = Field(default=None, ge=0, description="Retention in milliseconds")
    MAX_ENTRIES: int | None = Field(default=None, ge=0, description="Maximum atoms per store")

    # Fetching
    FETCH_TIMEOUT: int = Field(default=30, ge=1, description="HTTP timeout in seconds")
    REFRESH_WORKERS: int = Field(default=3, ge=1, le=32, description="Refresh threads")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )

    @field_validator("TABLE_NAMES")
    @classmethod
    def validate_table_names(cls, v: list[str]) -> list[str]:
        """Validate that table names are plain SQL identifiers."""
        for name in v:
            try:
                validate_identifier(name)
            except ValidationError as e:
                raise ValueError(str(e))
        return v

    def table_name(self, index: int) -> str:
        """Get the table name of a store index."""
        if index < len(self.TABLE_NAMES):
            return self.TABLE_NAMES[index]
        return f"cache_{index}"

    def backend_for(self, index: int) -> BackendConfig:
        """Get the backend configuration of a store index."""
        if self.BACKEND == "file":
            return FileBackend(self.CACHE_DIR / f"store_{index}")
        if self.BACKEND == "database":
            return DatabaseBackend(self.CACHE_DIR, self.DB_FILE_NAME, self.table_name(index))
        return NullBackend()

    def clean_up_policy(self) -> CleanUpPolicy | None:
        """Get the default clean-up policy, or None if nothing is configured."""
        policies: list[CleanUpPolicy] = []
        if self.RETENTION_MS is not None:
            policies.append(RetentionPolicy(self.RETENTION_MS))
        if self.MAX_ENTRIES is not None:
            policies.append(MaxEntriesPolicy(self.MAX_ENTRIES))
        if not policies:
            return None
        if len(policies) == 1:
            return policies[0]
        return CombinedPolicy(*policies)


@lru_cache
def get_settings() -> Settings:
    """Get the cached application settings."""
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call reloads them."""
    get_settings.cache_clear()
