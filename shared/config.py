"""Settings shared by every worker process.

``LogSettings`` covers the logging knobs and is read on its own by
``shared.logging.setup_logging``. Services subclass ``BaseSettings`` and
pull connection fields from the factories below:

    class Settings(BaseSettings):
        database_url: str = database_url_field()
        redis_url: str = redis_url_field()
"""

from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LogSettings(PydanticBaseSettings):
    """SERVICE_NAME, LOG_FORMAT and LOG_LEVEL from the environment."""

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    service_name: str = Field(default="unknown", description="Bound to every log line as `service`")
    log_format: Literal["json", "console"] = Field(default="console")
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {', '.join(LOG_LEVELS)}")
        return level


class BaseSettings(LogSettings):
    """Service settings base: logging fields plus `.env` support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def _connection_field(what: str, example: str, required: bool) -> Any:
    if required:
        return Field(..., description=f"{what} connection URL", examples=[example])
    return Field(default=None, description=f"{what} connection URL (optional)")


def database_url_field(required: bool = True):
    """SQLAlchemy async URL, e.g. postgresql+asyncpg://..."""
    return _connection_field("Database", "postgresql+asyncpg://user:pass@db:5432/domainstack", required)


def redis_url_field(required: bool = True):
    return _connection_field("Redis", "redis://redis:6379/0", required)


def resend_api_key_field(required: bool = False):
    """Resend API key. Empty disables the email channel."""
    if required:
        return Field(..., min_length=1, description="Resend API key")
    return Field(default="", description="Resend API key, email disabled when empty")
