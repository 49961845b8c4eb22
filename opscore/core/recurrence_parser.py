"""Recurrence parsing utilities for task definitions.

Stores encode recurrence loosely: a string tag with ad hoc fields
(`recurrence_type`, `recurrence_interval`, `recurrence_days_of_week`,
`recurrence_day_of_month`) or a plain CRON expression. Everything is turned into
the closed `Recurrence` union before the expander sees it.
"""

import calendar as month_calendar
import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from typing import Any

from croniter import croniter

from opscore.domain.task import (
    DailyRecurrence,
    MonthlyRecurrence,
    NoRecurrence,
    Recurrence,
    Weekday,
    WeeklyRecurrence,
)


logger = logging.getLogger(__name__)

_WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
_WORKWEEK = frozenset({Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY})
_CRON_FIELD_COUNT = 5
_LEGACY_SUNDAY = 7


def normalize_days_of_week(values: Iterable[Any] | None) -> frozenset[Weekday]:
    """Normalize a stored days-of-week list to Weekday members.

    Supports:
    - 0-6 with Sunday = 0 (the usual store format)
    - legacy 1-7 with Monday = 1 and Sunday = 7 (detected by any value above 6)
    - weekday names or three-letter prefixes ("mon", "Wednesday")

    Raises:
        ValueError: If a value cannot be interpreted as a weekday
    """
    if not values:
        return frozenset()

    items = list(values)
    if all(isinstance(v, str) and not v.strip().isdigit() for v in items):
        result = set()
        for name in items:
            prefix = name.strip().lower()[:3]
            matches = [i for i, full in enumerate(_WEEKDAY_NAMES) if full.lower().startswith(prefix)]
            if len(prefix) < 3 or not matches:
                msg = f"Invalid weekday in recurrence: {name}"
                raise ValueError(msg)
            result.add(Weekday(matches[0]))
        return frozenset(result)

    numbers = [int(v) for v in items]
    if any(n < 0 or n > _LEGACY_SUNDAY for n in numbers):
        msg = f"Invalid recurrence days of week: {numbers}"
        raise ValueError(msg)
    if max(numbers) > 6:  # noqa: PLR2004
        # Legacy Monday=1..Sunday=7 -> Sunday-based 0-6
        numbers = [0 if n == _LEGACY_SUNDAY else n for n in numbers]
    # Sunday-based 0-6 -> Monday = 0
    return frozenset(Weekday((n - 1) % 7) for n in numbers)


def _parse_cron_days(field: str) -> frozenset[Weekday]:
    """Parse a CRON day-of-week field ("1,3", "1-5", "0") into Weekday members."""
    days: set[int] = set()
    for part in field.split(","):
        if "-" in part:
            low, high = (int(p) for p in part.split("-", 1))
            days.update(range(low, high + 1))
        else:
            days.add(int(part))
    if any(d < 0 or d > _LEGACY_SUNDAY for d in days):
        msg = f"Invalid recurrence day-of-week field: {field}"
        raise ValueError(msg)
    # CRON uses Sunday = 0 (or 7)
    return frozenset(Weekday((d - 1) % 7) for d in days)


def recurrence_from_cron(cron_expr: str) -> Recurrence:
    """Convert a CRON expression to a Recurrence.

    Only shapes the engine can express are accepted: daily ("m h * * *"),
    weekly ("m h * * 1,3") and monthly ("m h 15 * *", "m h L * *"). The time
    fields are ignored; occurrences take their time of day from the task start.

    Raises:
        ValueError: If the expression is invalid or has an unsupported shape
    """
    if not croniter.is_valid(cron_expr):
        msg = f"Invalid recurrence format: {cron_expr}"
        raise ValueError(msg)

    parts = cron_expr.split()
    if len(parts) != _CRON_FIELD_COUNT:
        msg = f"Unsupported recurrence format: {cron_expr}"
        raise ValueError(msg)

    _minute, _hour, day_of_month, month, day_of_week = parts
    if month != "*":
        msg = f"Unsupported recurrence format (month restriction): {cron_expr}"
        raise ValueError(msg)

    if day_of_month == "*" and day_of_week == "*":
        return DailyRecurrence()

    if day_of_month == "*" and re.fullmatch(r"[0-7](-[0-7])?(,[0-7](-[0-7])?)*", day_of_week):
        return WeeklyRecurrence(weekdays=_parse_cron_days(day_of_week))

    if day_of_week == "*" and day_of_month.upper() == "L":
        return MonthlyRecurrence(day=31)

    if day_of_week == "*" and day_of_month.isdigit():
        return MonthlyRecurrence(day=int(day_of_month))

    msg = f"Unsupported recurrence format: {cron_expr}"
    raise ValueError(msg)


def _start_day_of_month(data: Mapping[str, Any]) -> int | None:
    start = data.get("start_at")
    if isinstance(start, datetime):
        return start.day
    if isinstance(start, str):
        try:
            return datetime.fromisoformat(start.replace("Z", "+00:00")).day
        except ValueError:
            return None
    return None


def parse_recurrence(data: Mapping[str, Any]) -> Recurrence:
    """Parse the loose recurrence encoding of a stored task row.

    Supports:
    - "none" / missing → one-off
    - "daily", "weekly", "monthly" with `recurrence_interval`
    - "weekly" with `recurrence_days_of_week` (see normalize_days_of_week)
    - "monthly" with `recurrence_day_of_month` (defaults to the start day's day of month)
    - "weekdays" → weekly on Monday-Friday
    - CRON expressions (e.g., "0 8 * * 1,3")

    Args:
        data: Raw task row

    Returns:
        Recurrence

    Raises:
        ValueError: If recurrence format is invalid
    """
    raw = data.get("recurrence")
    if raw is None:
        raw = data.get("recurrence_type")

    if raw is None:
        return NoRecurrence()

    if not isinstance(raw, str):
        msg = f"Invalid recurrence format: {raw!r}"
        raise ValueError(msg)

    tag = raw.strip().lower()
    interval = int(data.get("recurrence_interval") or 1)

    if tag in ("", "none", "once"):
        return NoRecurrence()

    if tag == "daily":
        return DailyRecurrence(interval=interval)

    if tag == "weekly":
        weekdays = normalize_days_of_week(data.get("recurrence_days_of_week"))
        return WeeklyRecurrence(weekdays=weekdays, interval=interval)

    if tag == "weekdays":
        if interval != 1:
            logger.debug("Ignoring interval %d on weekdays recurrence", interval)
        return WeeklyRecurrence(weekdays=_WORKWEEK)

    if tag == "monthly":
        day = data.get("recurrence_day_of_month") or _start_day_of_month(data)
        if day is None:
            msg = "Invalid recurrence format: monthly rule without a day of month"
            raise ValueError(msg)
        return MonthlyRecurrence(day=int(day), interval=interval)

    if croniter.is_valid(raw):
        return recurrence_from_cron(raw)

    msg = (
        f"Invalid recurrence format: {raw}. "
        f"Use 'none', 'daily', 'weekly', 'weekdays', 'monthly' or a CRON expression"
    )
    raise ValueError(msg)


def _cron_days(weekdays: Iterable[Weekday]) -> str:
    return ",".join(str((int(d) + 1) % 7) for d in sorted(weekdays))


def recurrence_to_cron(recurrence: Recurrence, time_of_day: time = time(0, 0)) -> str | None:
    """Render a Recurrence as a CRON expression (intervals are not representable).

    Returns None for one-off tasks.
    """
    prefix = f"{time_of_day.minute} {time_of_day.hour}"
    match recurrence:
        case NoRecurrence():
            return None
        case DailyRecurrence():
            return f"{prefix} * * *"
        case WeeklyRecurrence(weekdays=weekdays) if weekdays:
            return f"{prefix} * * {_cron_days(weekdays)}"
        case WeeklyRecurrence():
            return None
        case MonthlyRecurrence(day=day):
            return f"{prefix} {day} * *"


def matches_cron_day(cron_expr: str, day: date) -> bool:
    """Return True if a midnight-anchored CRON expression fires on `day`."""
    return bool(croniter.match(cron_expr, datetime.combine(day, time.min)))


def last_day_of_month(day: date) -> int:
    return month_calendar.monthrange(day.year, day.month)[1]


def _format_time(time_of_day: time | None) -> str:
    if time_of_day is None:
        return ""
    h, m = time_of_day.hour, time_of_day.minute
    if h == 0 and m == 0:
        return " at midnight"
    if h == 12 and m == 0:  # noqa: PLR2004
        return " at noon"
    period = "AM" if h < 12 else "PM"  # noqa: PLR2004
    display_hour = h if h <= 12 else h - 12  # noqa: PLR2004
    if display_hour == 0:
        display_hour = 12
    return f" at {display_hour}:{m:02d} {period}"


def _ordinal(n: int) -> str:
    suffix = "th"
    if n in (1, 21, 31):
        suffix = "st"
    elif n in (2, 22):
        suffix = "nd"
    elif n in (3, 23):
        suffix = "rd"
    return f"{n}{suffix}"


def describe_recurrence(recurrence: Recurrence, time_of_day: time | None = None) -> str:
    """Convert a Recurrence to human-readable text.

    Returns:
        Description (e.g., "every Monday, Wednesday at 9:00 AM")
    """
    time_str = _format_time(time_of_day)
    match recurrence:
        case NoRecurrence():
            return f"once{time_str}"
        case DailyRecurrence(interval=1):
            return f"daily{time_str}"
        case DailyRecurrence(interval=interval):
            return f"every {interval} days{time_str}"
        case WeeklyRecurrence(weekdays=weekdays, interval=interval) if not weekdays:
            return f"weekly{time_str}" if interval == 1 else f"every {interval} weeks{time_str}"
        case WeeklyRecurrence(weekdays=weekdays, interval=interval):
            days = ", ".join(_WEEKDAY_NAMES[d] for d in sorted(weekdays))
            every = "every" if interval == 1 else f"every {interval} weeks on"
            return f"{every} {days}{time_str}"
        case MonthlyRecurrence(day=day, interval=interval):
            every = "monthly" if interval == 1 else f"every {interval} months"
            clamp = " (last day in shorter months)" if day > 28 else ""  # noqa: PLR2004
            return f"{every} on the {_ordinal(day)}{time_str}{clamp}"
    return "scheduled"
