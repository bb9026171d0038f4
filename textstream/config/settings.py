import os
from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Text Stream", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed browser origins in debug mode",
    )

    # Job processing
    job_concurrency: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Maximum number of jobs executing concurrently",
    )
    job_poll_interval_ms: int = Field(
        default=50, ge=1, le=100, description="Admission loop wake interval"
    )
    job_loop_backoff_ms: int = Field(
        default=1000, ge=0, description="Backoff after a scheduling loop error"
    )
    unit_delay_min_ms: int = Field(
        default=1000, ge=0, description="Minimum artificial delay per output character"
    )
    unit_delay_max_ms: int = Field(
        default=5000, ge=0, description="Maximum artificial delay per output character"
    )
    job_retention_minutes: int = Field(
        default=60, ge=0, description="Age after which finished jobs are removed"
    )
    job_cleanup_interval_s: int = Field(
        default=300, ge=1, description="Interval between cleanup sweeps"
    )
    max_input_length: int = Field(
        default=10000, ge=1, description="Maximum accepted input text length"
    )

    # Connections
    connection_header: str = Field(
        default="X-Connection-ID",
        description="Header carrying the caller's opaque connection identifier",
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        if self.unit_delay_min_ms > self.unit_delay_max_ms:
            raise ValueError(
                f"UNIT_DELAY_MIN_MS={self.unit_delay_min_ms} must not exceed "
                f"UNIT_DELAY_MAX_MS={self.unit_delay_max_ms}"
            )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
