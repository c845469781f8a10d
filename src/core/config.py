"""Centralized configuration management with environment-aware defaults.

This module implements the configuration system using Pydantic Settings,
providing type-safe configuration with validation and environment variable
support.

Features:
- **Type safety**: All configuration values are validated and typed
- **Environment variables**: Supports .env files and environment overrides
- **Nested configuration**: Uses __ delimiter for complex config structures
- **Caching**: Configuration is cached for performance

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
4. Environment-based defaults (production vs development)
"""

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.infrastructure.constants import (
    ACQUIRE_TIMEOUT_SECONDS,
    INVALIDATION_CHANNEL,
    POOL_SIZE,
    PREPARED_STATEMENT_CACHE_SIZE,
    PREPARED_STATEMENT_SQL_LIMIT,
    RELOAD_DELAY_SECONDS,
)

if TYPE_CHECKING:
    from src.infrastructure.database.profiles import ConnectionProfile


class LogConfig(BaseModel):
    """Simplified logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    enable_sql_logging: bool = Field(
        default=False,
        description="Enable SQL query logging",
    )
    slow_query_threshold_ms: int = Field(
        default=100,
        gt=0,
        description="Slow query threshold in milliseconds",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """Cloud-agnostic observability configuration."""

    enable_tracing: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class DatabaseConfig(BaseModel):
    """Database connection and pool settings.

    ``mode`` selects between a networked PostgreSQL server and a local SQLite
    file. Pool settings apply to both modes.
    """

    mode: Literal["networked", "local"] = Field(
        default="local",
        description="Which kind of store to connect to",
    )
    address: str = Field(default="localhost", description="Database server host")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="tablesync", description="Database name")
    username: str = Field(default="tablesync", description="Database user")
    password: str = Field(default="", description="Database password")
    file_path: Path = Field(
        default=Path("tablesync.db"),
        description="Backing file for local mode",
    )
    pool_size: int = Field(
        default=POOL_SIZE,
        ge=1,
        le=100,
        description="Number of connections to maintain in the pool",
    )
    pool_timeout: float = Field(
        default=ACQUIRE_TIMEOUT_SECONDS,
        gt=0,
        le=300,
        description="Timeout in seconds for acquiring a connection from the pool",
    )
    prepared_statement_cache_size: int = Field(
        default=PREPARED_STATEMENT_CACHE_SIZE,
        ge=0,
        description="Number of prepared statements cached per connection",
    )
    prepared_statement_max_sql_length: int = Field(
        default=PREPARED_STATEMENT_SQL_LIMIT,
        ge=0,
        description="Longest SQL text eligible for the prepared statement cache",
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Whether to test connections before using them",
    )
    echo: bool = Field(
        default=False,
        description="Whether to log SQL statements (use only for debugging)",
    )

    def to_profile(self) -> "ConnectionProfile":
        """Build the connection profile matching the configured mode."""
        from src.infrastructure.database.profiles import (  # noqa: PLC0415
            LocalProfile,
            NetworkProfile,
        )

        if self.mode == "networked":
            return NetworkProfile(
                address=self.address,
                port=self.port,
                database=self.database,
                username=self.username,
                password=self.password,
            )
        return LocalProfile(file_path=self.file_path)


class ExecutorConfig(BaseModel):
    """Async executor settings."""

    max_in_flight: int | None = Field(
        default=None,
        ge=1,
        description="Upper bound on concurrently running operations (None = unbounded)",
    )


class CacheSyncConfig(BaseModel):
    """Cross-process cache invalidation settings."""

    channel: str = Field(
        default=INVALIDATION_CHANNEL,
        min_length=1,
        description="Pub/sub channel carrying invalidation messages",
    )
    reload_delay_seconds: float = Field(
        default=RELOAD_DELAY_SECONDS,
        ge=0,
        description="Delay before reloading or evicting, bridges replication lag",
    )
    scheduler_max_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum number of delayed actions running at once",
    )
    broker_url: str | None = Field(
        default=None,
        description="Redis URL for the invalidation broker (redis://...)",
    )

    @field_validator("broker_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class Settings(BaseSettings):
    """Main settings class for the library."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="TableSync", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the host is running in",
    )
    debug: bool = Field(default=False, description="Debug mode flag")

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )
    database_config: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    executor_config: ExecutorConfig = Field(
        default_factory=ExecutorConfig, description="Executor configuration"
    )
    cache_sync_config: CacheSyncConfig = Field(
        default_factory=CacheSyncConfig, description="Cache invalidation configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if (
            self.environment == "production"
            and self.observability_config.trace_sample_rate == 1.0
        ):
            self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json"]:
        """Auto-detect log formatter based on environment."""
        if self.environment == "development":
            return "console"
        return "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
