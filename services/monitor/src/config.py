"""Monitor service configuration.

Requires: DATABASE_URL, REDIS_URL
"""

from functools import lru_cache

from pydantic import Field

from shared.config import BaseSettings, database_url_field, redis_url_field, resend_api_key_field


class Settings(BaseSettings):
    """Monitor service settings."""

    # Required
    database_url: str = database_url_field(required=True)
    redis_url: str = redis_url_field(required=True)

    # Email transport
    resend_api_key: str = resend_api_key_field(required=False)
    resend_base_url: str = Field(default="https://api.resend.com")
    email_from: str = Field(default="Domainstack <alerts@domainstack.io>")

    # Network timeouts (seconds)
    dns_timeout: float = Field(default=5.0, gt=0, le=9)
    tls_timeout: float = Field(default=6.0, gt=0, le=9)
    http_timeout: float = Field(default=10.0, gt=0)
    http_max_bytes: int = Field(default=512 * 1024, ge=1024)
    http_max_redirects: int = Field(default=5, ge=0)

    # Auto-verification schedule
    auto_verify_first_delay: int = Field(default=60, ge=1, description="Seconds")
    auto_verify_factor: float = Field(default=3.0, gt=1)
    auto_verify_max_delay: int = Field(default=24 * 60 * 60, ge=1, description="Seconds")
    auto_verify_window_days: int = Field(default=30, ge=1)

    # Manual verification rate limit
    manual_verify_limit: int = Field(default=5, ge=1)
    manual_verify_window: int = Field(default=60, ge=1, description="Seconds")

    # Ownership re-verification
    grace_period_days: int = Field(default=7, ge=1)
    reverify_interval: int = Field(default=24 * 60 * 60, ge=60, description="Seconds")
    pending_sweep_interval: int = Field(default=24 * 60 * 60, ge=60, description="Seconds")

    # Change detection
    monitor_interval: int = Field(default=6 * 60 * 60, ge=60, description="Seconds")

    # Workflow runtime
    step_max_attempts: int = Field(default=3, ge=1)
    step_backoff_base: float = Field(default=1.0, gt=0)
    step_backoff_max: float = Field(default=30.0, gt=0)
    max_run_attempts: int = Field(default=3, ge=1)
    run_lock_ttl: int = Field(default=15 * 60, ge=30, description="Seconds")
    max_concurrent_runs: int = Field(default=10, ge=1)
    resume_poll_interval: int = Field(default=30, ge=1, description="Seconds")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Validates required env vars on first call.
    Raises ValidationError if any required var is missing.
    """
    return Settings()
