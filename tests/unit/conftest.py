"""Pytest configuration and fixtures for unit tests."""

import pytest

from opscore.core.config import Settings
from opscore.domain import WeeklyRecurrence, Weekday


@pytest.fixture
def weekly_cook(make_definition):
    """Recurring cook task on Monday and Wednesday, starting Monday 2024-03-04."""
    return make_definition(
        id="weekly-cook",
        recurrence=WeeklyRecurrence(weekdays=frozenset({Weekday.MONDAY, Weekday.WEDNESDAY})),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings with explicit time-lock defaults, independent of the environment."""
    return Settings(
        company_timezone="UTC",
        default_lock_mode="scheduled",
        default_unlock_before_minutes=30,
        default_grace_minutes=None,
        max_range_days=31,
    )
