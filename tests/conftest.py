"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any

import pytest

from opscore.core.calendar import CompanyCalendarConfig
from opscore.domain import Shift, TaskCompletion, TaskDefinition


# 2024-03-04 is a Monday
MONDAY = date(2024, 3, 4)
TUESDAY = date(2024, 3, 5)
WEDNESDAY = date(2024, 3, 6)


@pytest.fixture
def utc_calendar() -> CompanyCalendarConfig:
    """Company calendar with UTC wall clock and a midnight day start."""
    return CompanyCalendarConfig(company_id="company-1", timezone="UTC")


@pytest.fixture
def bucharest_calendar() -> CompanyCalendarConfig:
    """Company calendar in Europe/Bucharest whose business day starts at 04:00."""
    return CompanyCalendarConfig(company_id="company-1", timezone="Europe/Bucharest", day_start=time(4, 0))


@pytest.fixture
def definition_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw task definition rows as a store would return them.

    Defaults to a one-off cook task at location loc-1, Monday 09:00 UTC, 2h deadline.
    """

    def _row(**overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": "task-1",
            "company_id": "company-1",
            "location_id": "loc-1",
            "assigned_role": "Cook",
            "title": "Clean fryer",
            "start_at": datetime(2024, 3, 4, 9, 0, tzinfo=UTC),
            "deadline_offset_minutes": 120,
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def make_definition(definition_row) -> Callable[..., TaskDefinition]:
    """Factory for validated task definitions (see definition_row for defaults)."""

    def _make(**overrides: Any) -> TaskDefinition:
        return TaskDefinition.model_validate(definition_row(**overrides))

    return _make


@pytest.fixture
def shift_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw shift rows: a published Monday cook shift at loc-1 with emp-1 approved."""

    def _row(**overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": "shift-1",
            "location_id": "loc-1",
            "shift_date": MONDAY,
            "start_time": time(8, 0),
            "end_time": time(16, 0),
            "role": "Cook",
            "shift_assignments": [{"id": "assign-1", "staff_id": "emp-1", "approval_status": "approved"}],
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def make_shift(shift_row) -> Callable[..., Shift]:
    """Factory for validated shifts (see shift_row for defaults)."""

    def _make(**overrides: Any) -> Shift:
        return Shift.model_validate(shift_row(**overrides))

    return _make


@pytest.fixture
def completion_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw completion rows: task-1 completed on Monday at 10:00 UTC by emp-1."""

    def _row(**overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": "completion-1",
            "task_id": "task-1",
            "occurrence_date": MONDAY,
            "completed_by_employee_id": "emp-1",
            "completed_at": datetime(2024, 3, 4, 10, 0, tzinfo=UTC),
            "completion_mode": "kiosk",
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def make_completion(completion_row) -> Callable[..., TaskCompletion]:
    """Factory for validated completions (see completion_row for defaults)."""

    def _make(**overrides: Any) -> TaskCompletion:
        return TaskCompletion.model_validate(completion_row(**overrides))

    return _make
