"""Configuration management for recordQL.

Settings are read from ``RECORDQL_``-prefixed environment variables (and an
optional ``.env`` file) using pydantic-settings.  The connection fields also
accept the bare ``DB_HOST`` / ``DB_PORT`` / ``DB_USER`` / ``DB_PASSWORD`` /
``DB_NAME`` variables so existing deployments keep working.

Usage::

    from recordql.config import get_settings

    settings = get_settings()
    dsn = settings.get_connection_string()
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings with environment variable support.

    Attributes:
        db_host: PostgreSQL host.
        db_port: PostgreSQL port.
        db_user: Database user.
        db_password: Database password.
        db_name: Database name.
        database_uri: Complete DSN; overrides the individual parts when set.
        pool_min_size: Connections kept open by the pool.
        pool_max_size: Upper bound on pooled connections.
        pool_timeout: Seconds to wait for a free connection.
        default_limit: LIMIT applied by ``execute()`` when none is set.
        default_page_size: Page size used when none is given.
        strict_clauses: Raise ``InvalidClauseError`` on builder misuse instead
            of logging a warning and skipping the call.
        log_level: Logging level name.
        log_json: Render log events as JSON instead of console text.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECORDQL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    db_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("RECORDQL_DB_HOST", "DB_HOST"),
    )
    db_port: int = Field(
        default=5432,
        validation_alias=AliasChoices("RECORDQL_DB_PORT", "DB_PORT"),
    )
    db_user: str = Field(
        default="postgres",
        validation_alias=AliasChoices("RECORDQL_DB_USER", "DB_USER"),
    )
    db_password: str = Field(
        default="",
        validation_alias=AliasChoices("RECORDQL_DB_PASSWORD", "DB_PASSWORD"),
    )
    db_name: str = Field(
        default="postgres",
        validation_alias=AliasChoices("RECORDQL_DB_NAME", "DB_NAME"),
    )
    database_uri: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RECORDQL_DATABASE_URI", "DATABASE_URL"),
        description="Complete DSN, overrides host/port/user/password/name",
    )

    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)

    default_limit: int = Field(default=100, ge=1)
    default_page_size: int = Field(default=20, ge=1)
    strict_clauses: bool = False

    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def get_connection_string(self) -> str:
        """Return the PostgreSQL connection string (DSN)."""
        if self.database_uri:
            return self.database_uri
        auth = self.db_user
        if self.db_password:
            auth = f"{auth}:{self.db_password}"
        return f"postgresql://{auth}@{self.db_host}:{self.db_port}/{self.db_name}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance (cached)."""
    return Settings()
