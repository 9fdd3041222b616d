"""Configuration management for the friends database."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Storage configuration."""

    data_dir: Path = Field(default=Path("data"), description="Directory holding database files")
    database_name: str = Field(
        default="MyDatabase", min_length=1, description="Name of the database to open"
    )
    schema_version: int = Field(default=1, ge=1, description="Requested schema version")
    journal_mode: Literal["wal", "delete", "truncate", "memory"] = Field(
        default="wal", description="SQLite journal mode"
    )
    synchronous: Literal["full", "normal", "off"] = Field(
        default="full", description="SQLite synchronous level"
    )
    busy_timeout: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Seconds to wait for a write lock held by another process",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="console", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="friends_db", description="Service name for tracing")
    otel_console_export: bool = Field(
        default=False, description="Also print finished spans to the console"
    )
    metrics_enabled: bool = Field(default=False, description="Expose Prometheus metrics over HTTP")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the friends database."""

    model_config = SettingsConfigDict(
        env_prefix="FRIENDS_DB_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the data directory exists."""
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
