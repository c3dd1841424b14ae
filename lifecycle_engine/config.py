"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lifecycle_engine.core.permissions import PropertyRole


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Reservation Lifecycle Engine"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "pms"
    postgres_password: str = Field(default="pms_secret")
    postgres_db: str = "pms"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None  # e.g. sqlite+aiosqlite:///./dev.db

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Status graph
    allow_status_recovery: bool = False  # NO_SHOW/CANCELLED -> CONFIRMED

    # Business rules
    rule_repository: Literal["static", "database"] = "static"

    # Time windows
    no_show_min_hours: float = 6.0
    no_show_late_warning_hours: float = 72.0
    checkin_early_days: float = 1.0
    checkin_late_days: float = 1.0
    checkout_early_days: float = 1.0
    checkout_late_days: float = 7.0

    # Payment thresholds (fractions of the total due)
    confirm_min_payment_fraction: float = 0.2
    checkin_min_payment_fraction: float = 0.5
    estimated_nightly_rate: int = 2500  # used when a reservation has no total

    # Data integrity
    integrity_read_timeout_seconds: float = 5.0
    status_history_depth: int = 5
    duplicate_change_window_minutes: int = 5
    operational_day_start_hour: int = 6  # operational days run 06:00 to 05:59 UTC

    # Automation sweep
    automation_user_id: str = "system"
    automation_role: PropertyRole = PropertyRole.PROPERTY_MGR
    stale_pending_hours: float = 24.0
    no_show_after_hours: float = 24.0
    sweep_interval_minutes: int = 15
    sweep_concurrency: int = 10
    sweep_reservation_timeout_seconds: float = 30.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
