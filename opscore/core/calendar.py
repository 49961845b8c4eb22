"""Company business-day calendar.

Every "which day is it" question in the engine goes through this module. A
business day starts at the company's configured day-start time in the company
timezone, so an instant at 02:30 local time belongs to the previous day when the
day starts at 04:00. No function here reads the system clock.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from opscore.core.config import Settings, constants, settings


class CompanyCalendarConfig(BaseModel):
    """Day-boundary policy for one company."""

    model_config = ConfigDict(frozen=True)

    company_id: str = Field(..., description="Company the policy belongs to")
    timezone: str = Field(default="Europe/Bucharest", description="IANA timezone name")
    day_start: time = Field(default=time(0, 0), description="Local time at which a business day begins")

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {value}"
            raise ValueError(msg) from e
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def day_start_offset(self) -> timedelta:
        return timedelta(hours=self.day_start.hour, minutes=self.day_start.minute)

    @classmethod
    def from_settings(cls, company_id: str, config: Settings = settings) -> "CompanyCalendarConfig":
        """Build a policy from the environment-level defaults."""
        return cls(
            company_id=company_id,
            timezone=config.company_timezone,
            day_start=time(config.business_day_start_hour, config.business_day_start_minute),
        )


def as_aware(instant: datetime) -> datetime:
    """Attach UTC to a naive instant; aware instants pass through."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant


def to_company_time(instant: datetime, config: CompanyCalendarConfig) -> datetime:
    """Convert an instant to wall-clock time in the company zone."""
    return as_aware(instant).astimezone(config.zone)


def day_key(instant: datetime, config: CompanyCalendarConfig) -> date:
    """Return the business day an instant belongs to.

    Pure function of (instant, config): callers in different timezones get the
    same key for the same instant.
    """
    local = to_company_time(instant, config)
    return (local - config.day_start_offset).date()


def today(config: CompanyCalendarConfig, now: datetime) -> date:
    """Canonical "today" for a company at instant `now`."""
    return day_key(now, config)


def tomorrow(config: CompanyCalendarConfig, now: datetime) -> date:
    """Canonical "tomorrow" for a company at instant `now`."""
    return today(config, now) + timedelta(days=1)


def combine(day: date, time_of_day: time, config: CompanyCalendarConfig) -> datetime:
    """Place a local wall-clock time on a calendar day and return the UTC instant."""
    local = datetime.combine(day, time_of_day.replace(tzinfo=None), tzinfo=config.zone)
    return local.astimezone(UTC)


def local_time_of(instant: datetime, config: CompanyCalendarConfig) -> time:
    """Wall-clock time of an instant in the company zone (seconds dropped)."""
    local = to_company_time(instant, config)
    return time(local.hour, local.minute)


def day_window(day: date, config: CompanyCalendarConfig) -> tuple[datetime, datetime]:
    """Half-open [start, end) instants (UTC) covering one business day."""
    start = combine(day, config.day_start, config)
    end = combine(day + timedelta(days=1), config.day_start, config)
    return start, end


def format_day_key(day: date) -> str:
    """Render a day as its canonical key text (YYYY-MM-DD)."""
    return day.strftime(constants.DAY_KEY_FORMAT)


def parse_day_key(text: str) -> date:
    """Parse canonical day-key text.

    Raises:
        ValueError: If the text is not a YYYY-MM-DD date
    """
    return datetime.strptime(text, constants.DAY_KEY_FORMAT).date()


def iter_days(start: date, end: date) -> list[date]:
    """All calendar days from start to end, inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
