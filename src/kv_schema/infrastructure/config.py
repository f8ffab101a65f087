"""Configuration management for the schema runtime."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Backend selection and layering."""

    backend: Literal["memory", "file"] = Field(
        default="memory", description="Authoritative storage backend"
    )
    data_dir: Path = Field(default=Path("/data/kv"), description="Directory for the file backend")
    cache_tier: bool = Field(
        default=False, description="Put an in-memory tier in front of the backend"
    )
    write_policy: Literal["first_tier", "all_tiers"] = Field(
        default="all_tiers", description="Which tiers receive writes when layered"
    )


class SerializationConfig(BaseModel):
    """Record serialization settings."""

    strict: bool = Field(
        default=False, description="Use pydantic strict mode when decoding records"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="kv_schema", description="Service name for tracing")
    otel_sample_ratio: float = Field(
        default=1.0, ge=0.0, le=1.0, description="Fraction of traces sampled"
    )
    metrics_enabled: bool = Field(default=False, description="Start the Prometheus exporter")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the schema runtime."""

    model_config = SettingsConfigDict(
        env_prefix="KV_SCHEMA_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    serialization: SerializationConfig = Field(default_factory=SerializationConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the data directory exists when the file backend is used."""
        if self.storage.backend == "file":
            self.storage.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
