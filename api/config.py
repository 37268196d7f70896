"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    app_version: str = "0.1.0"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    # Header set by the authenticating gateway with the acting user id
    identity_header: str = "X-Authenticated-User"

    # Database
    database_url: PostgresDsn
    database_pool_timeout: float = 30.0  # Seconds to wait for a pooled connection

    # Redis
    redis_url: RedisDsn

    # Rate limiting (fixed window)
    rate_limit_enabled: bool = True  # Set to False to disable rate limiting in dev
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    rate_limit_rating_writes_max: int = 30
    rate_limit_rating_writes_window_seconds: int = 60

    # Notifications
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 10.0
    audit_log_enabled: bool = True

    # Weekly summary job (rq-scheduler, UTC)
    weekly_summary_enabled: bool = True
    weekly_summary_day_of_week: int = 0  # Monday
    weekly_summary_hour: int = 9

    # Nightly insights job (rq-scheduler cron, UTC)
    nightly_insights_enabled: bool = True
    nightly_insights_hour: int = 2

    # Sentry
    sentry_dsn: str | None = None

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()  # type: ignore[call-arg]
    except Exception as e:
        if "validation" in type(e).__name__.lower() or "required" in str(e).lower():
            raise RuntimeError(
                "Missing required environment variables. Set DATABASE_URL and REDIS_URL."
            ) from e
        raise
