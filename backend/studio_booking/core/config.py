# backend/studio_booking/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import BRAND_NAME


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
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    app_name: str = Field(default=BRAND_NAME, description="Display name used in logs")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    is_testing: bool = Field(
        default_factory=is_running_tests, description="Set by the test harness"
    )

    database_url: str = Field(
        default="sqlite:///./studio_booking.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL of the relational store",
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    studio_timezone: str = Field(
        default="Europe/Tirane",
        alias="STUDIO_TIMEZONE",
        description="Timezone in which class dates and start times are scheduled",
    )

    # Reservation rules
    promotion_lead_time_hours: float = Field(
        default=2,
        description="Waitlist promotions are skipped when the class starts sooner than this",
    )
    user_cancellation_cutoff_hours: float = Field(
        default=2,
        description="Clients cannot cancel their own booking closer to class start than this",
    )
    waitlist_max_insert_attempts: int = Field(
        default=5,
        description="Optimistic retries when two enqueues race for the same position",
    )

    # Per-class critical section
    redis_url: Optional[str] = Field(
        default=None,
        alias="REDIS_URL",
        description="Enables the cross-process class lock when set",
    )
    class_lock_ttl_seconds: int = Field(default=30)
    class_lock_wait_seconds: float = Field(default=10)

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("studio_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown STUDIO_TIMEZONE: {value}") from exc
        return value

    @field_validator("waitlist_max_insert_attempts")
    @classmethod
    def _validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("waitlist_max_insert_attempts must be at least 1")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
