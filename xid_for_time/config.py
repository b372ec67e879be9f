"""
Configuration management for xid-for-time.

Connection settings follow libpq's environment variables (PGHOST, PGPORT,
PGDATABASE, PGUSER, PGPASSWORD, PGSSLMODE, PGCONNECT_TIMEOUT) and are loaded
with pydantic-settings. Command-line flags override the environment.

Invariants:
    - All settings have defaults suitable for a local Postgres
    - Passwords are never logged or exposed in error messages
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LOG_FORMATS = ("logfmt", "json", "text")

SSL_MODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}


class PostgresSettings(BaseSettings):
    """Postgres connection settings loaded from PG* environment variables."""

    host: str = Field(default="127.0.0.1", description="Postgres host")
    port: int = Field(default=5432, description="Postgres port")
    database: str = Field(default="postgres", description="Postgres database name")
    user: str = Field(default="postgres", description="Postgres user")
    password: str | None = Field(default=None, description="Postgres password")
    sslmode: str = Field(default="prefer", description="libpq sslmode")
    connect_timeout: int = Field(default=10, description="Connection timeout seconds")
    application_name: str = Field(default="xid-for-time", alias="PGAPPNAME")

    model_config = {"env_prefix": "PG", "populate_by_name": True}

    @field_validator("sslmode")
    @classmethod
    def _check_sslmode(cls, value: str) -> str:
        if value not in SSL_MODES:
            raise ValueError(f"sslmode must be one of: {', '.join(sorted(SSL_MODES))}")
        return value

    @field_validator("connect_timeout")
    @classmethod
    def _check_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("connect_timeout must be > 0")
        return value

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the psycopg async driver."""
        credentials = quote_plus(self.user)
        if self.password:
            credentials += f":{quote_plus(self.password)}"
        return (
            "postgresql+psycopg://"
            f"{credentials}@{self.host}:{self.port}/{quote_plus(self.database)}"
        )

    @property
    def address(self) -> str:
        """host:port/database, safe to log."""
        return f"{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (logfmt, json, text)
    """

    log_level: str = "INFO"
    log_format: str = "logfmt"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "logfmt"),
        )

    def validate(self) -> None:
        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.log_format}'. Must be one of: {', '.join(LOG_FORMATS)}"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Invalid LOG_LEVEL '{self.log_level}'")


@dataclass(frozen=True)
class SearchConfig:
    """What to search for.

    Attributes:
        table: Table to use for estimates
        target: Target time to compute the xid for, as the store will parse it
        key_column: Primary key column
        time_column: Creation timestamp column
    """

    table: str
    target: str
    key_column: str = "id"
    time_column: str = "created_at"

    @classmethod
    def from_env(cls, table: str, target: str) -> SearchConfig:
        """Build from positional arguments plus column names from the environment."""
        return cls(
            table=table,
            target=target,
            key_column=os.getenv("XID_KEY_COLUMN", "id"),
            time_column=os.getenv("XID_TIME_COLUMN", "created_at"),
        )
