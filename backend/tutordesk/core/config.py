# backend/tutordesk/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import (
    DEFAULT_BASE_DURATION,
    DEFAULT_COMBINED_SESSION_RATE,
    DEFAULT_RATE,
    FREE_START_STEP_MINUTES,
    OVERDUE_GRACE_DAY,
    RECURRENCE_DEFAULT_HORIZON_MONTHS,
    RECURRENCE_MAX_INSTANCES,
)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level for the API process")

    # Database
    database_url: str = Field(
        default="sqlite:///./tutordesk.db",
        description="SQLAlchemy URL for the primary store",
    )
    test_database_url: str = Field(
        default="sqlite+pysqlite:///:memory:",
        description="SQLAlchemy URL used while is_testing is set",
    )
    is_testing: bool = False  # Set to True when running tests
    sql_echo: bool = False

    # Business calendar
    business_timezone: str = Field(
        default="America/Los_Angeles",
        description="Timezone all wall-clock comparisons and month windows use",
    )

    # Rate defaults (used when a tutor has no settings row)
    default_rate: float = Field(default=float(DEFAULT_RATE), gt=0)
    default_base_duration: int = Field(default=DEFAULT_BASE_DURATION, gt=0)
    combined_session_rate: float = Field(
        default=float(DEFAULT_COMBINED_SESSION_RATE),
        ge=0,
        description="Historical flat rate for group members; stored, never priced",
    )

    # Scheduling
    recurrence_max_instances: int = Field(default=RECURRENCE_MAX_INSTANCES, gt=0)
    recurrence_default_horizon_months: int = Field(
        default=RECURRENCE_DEFAULT_HORIZON_MONTHS, gt=0
    )
    free_start_step_minutes: int = Field(default=FREE_START_STEP_MINUTES, gt=0)

    # Billing
    overdue_grace_day: int = Field(default=OVERDUE_GRACE_DAY, ge=1, le=28)

    # API
    strict_problem_media_type: bool = Field(
        default=False,
        description="Serve error bodies as application/problem+json",
    )

    # Monitoring
    slow_operation_threshold_seconds: float = Field(default=1.0, gt=0)
    prometheus_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("business_timezone")
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
        return (value or "INFO").strip().upper()

    def get_database_url(self, override: Optional[str] = None) -> str:
        """Get the appropriate database URL based on context."""
        if override:
            return override
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
