"""Configuration management for opscore."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Company Calendar Configuration
    company_timezone: str = Field(default="Europe/Bucharest", description="IANA timezone of the company")
    business_day_start_hour: int = Field(
        default=0, ge=0, le=23, description="Hour at which a business day begins (company local time)"
    )
    business_day_start_minute: int = Field(
        default=0, ge=0, le=59, description="Minute at which a business day begins (company local time)"
    )

    # Time Lock Defaults
    default_lock_mode: Literal["scheduled", "anytime"] = Field(
        default="scheduled", description="Lock mode when a task does not set one"
    )
    default_unlock_before_minutes: int = Field(
        default=30, ge=0, description="Minutes before start when a task becomes completable"
    )
    default_grace_minutes: int | None = Field(
        default=None, ge=0, description="Minutes after the deadline before completion is refused (None = never)"
    )

    # Pipeline Configuration
    max_range_days: int = Field(default=92, ge=1, description="Longest date range accepted by run_for_range")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="production", description="Deployment environment reported to Logfire")


# Application Constants
class Constants:
    """Engine-wide constants."""

    # Day keys
    DAY_KEY_FORMAT: str = "%Y-%m-%d"

    # Occurrence identity encoding
    VIRTUAL_ID_MARKER: str = "-virtual-"
    COMPLETED_ID_MARKER: str = "-completed-"
    COMPLETION_KEY_SEPARATOR: str = ":"

    # Happening-now window for occurrences without a deadline
    DEFAULT_ACTIVE_WINDOW_MINUTES: int = 30

    # Approval states that count toward shift coverage
    APPROVED_ASSIGNMENT_STATES: frozenset[str] = frozenset({"approved", "confirmed"})

    # Diagnostics
    MAX_DIAGNOSTICS: int = 200  # Cap on diagnostics carried in a pipeline result

    # Caching
    CACHE_KEY_PREFIX: str = "opscore:occurrences"


def get_settings() -> Settings:
    """Get engine settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
