from enum import Enum
from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackendType(str, Enum):
    MEMORY = "memory"
    PERSISTENT = "persistent"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Job Core", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")

    # Storage
    storage_backend: StorageBackendType = Field(
        default=StorageBackendType.MEMORY, description="Job storage backend"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./jobcore.db",
        description="Database URL for the persistent key/value backend",
    )
    db_echo: bool = Field(default=False, description="Echo SQL statements")

    # Job queue
    job_enabled: bool = Field(default=True, description="Enable job processing")
    job_concurrency: int = Field(
        default=5, ge=1, description="Maximum jobs executing at once"
    )
    job_poll_interval_ms: int = Field(
        default=100, ge=1, description="Upper bound on worker idle wait"
    )
    job_default_max_retries: int = Field(
        default=3, ge=0, description="Default retry count for new jobs"
    )
    job_default_retry_delay_ms: int = Field(
        default=1000, ge=0, description="Default base backoff for retries"
    )
    job_default_timeout_ms: int = Field(
        default=60000, ge=1, description="Default handler timeout"
    )
    job_error_backoff_s: float = Field(
        default=1.0, ge=0, description="Worker loop sleep after an unexpected error"
    )
    job_stale_running_after_s: int = Field(
        default=0,
        ge=0,
        description="Running jobs older than this are requeued at startup",
    )

    # Scheduler
    scheduler_interval_ms: int = Field(
        default=1000, ge=1, description="Interval between scheduler sweeps"
    )

    # Built-in jobs and dead letters
    enable_builtin_jobs: bool = Field(
        default=True, description="Register built-in job handlers"
    )
    dead_letter_retention_days: int = Field(
        default=30, ge=0, description="Default age for dead-letter purges"
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        if (
            self.environment == "production"
            and self.storage_backend == StorageBackendType.PERSISTENT
            and ":memory:" in self.database_url
        ):
            raise ValueError(
                "DATABASE_URL points at an in-memory database, which is not allowed "
                "with STORAGE_BACKEND=persistent in production."
            )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
