"""Centralized configuration for docindex-server using Pydantic Settings."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseModel):
    """Options handed to a ``DocumentEngine`` instance.

    Kept separate from ``Settings`` so the engine can be embedded without
    reading the process environment.
    """

    model_config = {"extra": "forbid", "frozen": True}

    allow_full_scan: bool = True
    query_timeout_ms: int | None = Field(default=None, ge=1)
    deadline_check_interval: int = Field(default=256, ge=1)
    geo_cell_degrees: float = Field(default=1.0, gt=0.0, le=90.0)


class CollectorConfig(BaseModel):
    """Configuration for OTLP trace and metric export."""

    model_config = {"extra": "forbid"}

    enabled: bool = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(description="OTLP transport protocol"),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: dict[str, str] = Field(default_factory=dict)

    timeout_seconds: Annotated[int, Field(ge=1, le=60)] = 10

    grpc_insecure: bool = True

    resource_attributes: dict[str, str] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every value can be overridden with an upper-case environment variable
    of the same name (``PORT=8080``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP port")
    service_name: str = Field(default="docindex-server", description="Service name reported to telemetry")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    json_logs: bool = Field(default=True, description="Emit structured JSON logs")
    access_log: bool = Field(default=False, description="Keep uvicorn access logs at INFO")

    # Collection
    collection_name: str = Field(default="indexes", min_length=1, description="Name of the served collection")
    default_geo_distance: int = Field(
        default=5000, ge=1, description="Radius in metres used when a search omits or zeroes `distance`"
    )

    # Query engine
    allow_full_scan: bool = Field(default=True, description="Fall back to collection scans for unindexed clauses")
    query_timeout_ms: int | None = Field(default=None, ge=1, description="Per-query deadline in milliseconds")
    deadline_check_interval: int = Field(
        default=256, ge=1, description="Examined entries between deadline clock checks"
    )
    geo_cell_degrees: float = Field(default=1.0, gt=0.0, le=90.0, description="Geo index grid cell size in degrees")

    # Telemetry export
    otlp_endpoint: str = Field(default="", description="OTLP collector endpoint; empty disables export")
    otlp_protocol: Literal["http", "grpc"] = Field(default="grpc", description="OTLP transport protocol")

    # Security
    mask_error_details: bool = Field(
        default=True, description="Hide unexpected exception details in HTTP responses"
    )

    @model_validator(mode="after")
    def _normalize_log_level(self) -> Settings:
        level = self.log_level.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"LOG_LEVEL must be one of debug, info, warning, error, critical (got {self.log_level!r})")
        self.log_level = level.lower()
        return self

    def engine_settings(self) -> EngineSettings:
        return EngineSettings(
            allow_full_scan=self.allow_full_scan,
            query_timeout_ms=self.query_timeout_ms,
            deadline_check_interval=self.deadline_check_interval,
            geo_cell_degrees=self.geo_cell_degrees,
        )

    def collector_config(self) -> CollectorConfig:
        """OTLP export settings; disabled when no endpoint is configured."""
        if not self.otlp_endpoint:
            return CollectorConfig(enabled=False)
        return CollectorConfig(
            enabled=True,
            otlp_protocol=self.otlp_protocol,
            collector_endpoint=self.otlp_endpoint,
        )
