# pilates_studio/core/config.py
import logging
import os
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./pilates_studio.db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="SQLAlchemy URL. PostgreSQL in production, sqlite for local runs.",
    )
    database_echo: bool = Field(
        default=False,
        validation_alias=AliasChoices("DATABASE_ECHO", "database_echo"),
        description="Echo SQL statements to the log",
    )
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "redis_url"),
        description="Redis URL for the per-lesson promotion mutex. Unset disables the mutex.",
    )
    lock_namespace: str = Field(
        default="pilates",
        validation_alias=AliasChoices("LOCK_NAMESPACE", "lock_namespace"),
        description="Key prefix for Redis locks",
    )
    lesson_lock_ttl_seconds: int = Field(
        default=30,
        ge=1,
        description="Expiry of a held lesson mutex, guards against crashed holders",
    )
    lesson_lock_wait_seconds: float = Field(
        default=5.0,
        ge=0,
        description="How long promotion waits for a busy lesson mutex before giving up",
    )

    # Studio policy
    studio_timezone: str = Field(
        default="Asia/Tokyo",
        validation_alias=AliasChoices("STUDIO_TIMEZONE", "studio_timezone"),
        description="Timezone of the studio; the free-cancellation deadline is local to it",
    )
    booking_cutoff_minutes: int = Field(
        default=30,
        ge=0,
        description="Bookings close this many minutes before a lesson starts",
    )
    free_cancellation_hour: int = Field(
        default=21,
        ge=0,
        le=23,
        description="Local hour on the day before a lesson after which cancellation forfeits the ticket",
    )
    ticket_validity_months: int = Field(
        default=5,
        ge=1,
        description="Months a granted ticket stays usable",
    )
    consent_required: bool = Field(
        default=True,
        validation_alias=AliasChoices("CONSENT_REQUIRED", "consent_required"),
        description="Require a recorded consent acceptance before the first booking",
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
        description="Root log level",
    )
    slow_operation_threshold_ms: int = Field(
        default=1000,
        ge=0,
        description="Service operations slower than this are logged as warnings",
    )

    @field_validator("studio_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return normalized


settings = Settings()
logger.debug(
    "[CONFIG] studio_timezone=%s consent_required=%s redis_lock=%s",
    settings.studio_timezone,
    settings.consent_required,
    bool(settings.redis_url),
)
