"""
Configuration management for MDB_REPOSITORY.

Settings are read from ``MDB_REPOSITORY_``-prefixed environment variables or
a ``.env`` file, and validated by pydantic. Repositories can still be built
with explicit arguments; settings only feed ``create_client``.

Usage:
    settings = RepositorySettings()            # from the environment
    settings = RepositorySettings(mongo_uri="mongodb://localhost:27017",
                                  database_name="people_db")
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_INITIAL_WAIT,
    DEFAULT_RETRY_MAX_WAIT,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from .repositories.document import UpsertStrategy


class RepositorySettings(BaseSettings):
    """
    Connection, retry and write settings.

    Environment variables: MDB_REPOSITORY_MONGO_URI, MDB_REPOSITORY_DATABASE_NAME,
    MDB_REPOSITORY_MAX_POOL_SIZE, and so on for every field.
    """

    mongo_uri: str = Field("", description="MongoDB connection URI")
    database_name: str = Field("", description="Database holding the repositories' collections")

    max_pool_size: int = Field(
        DEFAULT_MAX_POOL_SIZE, ge=1, description="Maximum connection pool size"
    )
    min_pool_size: int = Field(
        DEFAULT_MIN_POOL_SIZE, ge=0, description="Minimum connection pool size"
    )
    server_selection_timeout_ms: int = Field(
        DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        ge=1000,
        description="Server selection timeout in milliseconds",
    )

    retry_attempts: int = Field(
        DEFAULT_RETRY_ATTEMPTS, ge=1, description="Attempts per store call, first one included"
    )
    retry_initial_wait: float = Field(
        DEFAULT_RETRY_INITIAL_WAIT, ge=0, description="Seconds before the first retry"
    )
    retry_max_wait: float = Field(
        DEFAULT_RETRY_MAX_WAIT, ge=0, description="Upper bound for a single backoff sleep"
    )

    upsert_strategy: UpsertStrategy = Field(
        UpsertStrategy.NATIVE, description="How add_or_update writes entities"
    )

    model_config = SettingsConfigDict(
        env_prefix="MDB_REPOSITORY_", env_file=".env", extra="ignore"
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "RepositorySettings":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})"
            )
        if self.retry_initial_wait > self.retry_max_wait:
            raise ValueError(
                f"retry_initial_wait ({self.retry_initial_wait}) cannot be greater than "
                f"retry_max_wait ({self.retry_max_wait})"
            )
        return self
