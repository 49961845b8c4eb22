"""Unit tests for the completion time-lock policy."""

from datetime import UTC, date, datetime

import pytest

from opscore.core.config import Settings
from opscore.core.errors import ErrorCode
from opscore.domain import ExecutionMode, LockMode
from opscore.models.service_models import LockReason
from opscore.services.completion_identity import attach_completions, build_completion_index
from opscore.services.recurrence_expander import occurrences_for_date
from opscore.services.time_lock import completion_lock_status, validate_completion_time


MONDAY = date(2024, 3, 4)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 4, hour, minute, tzinfo=UTC)


@pytest.fixture
def occurrence_for(utc_calendar):
    """Monday occurrence of a definition (start 09:00, deadline 11:00 by default)."""

    def _occurrence(definition, completions=()):
        occurrences = occurrences_for_date([definition], MONDAY, utc_calendar)
        [occurrence] = attach_completions(occurrences, build_completion_index(completions))
        return occurrence

    return _occurrence


@pytest.mark.unit
class TestCompletionLockStatus:
    """Tests for completion_lock_status function."""

    def test_too_early(self, make_definition, occurrence_for, test_settings):
        """Test completion is locked before the unlock window opens."""
        status = completion_lock_status(occurrence_for(make_definition()), at(8, 0), test_settings)

        assert status.locked is True
        assert status.reason == LockReason.TOO_EARLY
        assert status.unlock_at == at(8, 30)
        assert status.minutes_until_unlock == 30
        assert status.is_early is True

    def test_naive_now_treated_as_utc(self, make_definition, occurrence_for, test_settings):
        """Test a naive `now` is read as UTC."""
        status = completion_lock_status(occurrence_for(make_definition()), datetime(2024, 3, 4, 8), test_settings)

        assert status.locked is True
        assert status.minutes_until_unlock == 30

    def test_inside_window(self, make_definition, occurrence_for, test_settings):
        """Test completion is allowed from 30 minutes before the start."""
        status = completion_lock_status(occurrence_for(make_definition()), at(8, 45), test_settings)

        assert status.locked is False
        assert status.reason == LockReason.NOT_LOCKED
        assert status.is_late is False

    def test_late_without_grace_still_allowed(self, make_definition, occurrence_for, test_settings):
        """Test completion after the deadline is allowed and flagged late when no grace is set."""
        status = completion_lock_status(occurrence_for(make_definition()), at(11, 30), test_settings)

        assert status.locked is False
        assert status.is_late is True

    def test_after_grace_is_locked(self, make_definition, occurrence_for, test_settings):
        """Test completion is refused once the grace period has passed."""
        status = completion_lock_status(occurrence_for(make_definition(grace_minutes=15)), at(11, 30), test_settings)

        assert status.locked is True
        assert status.reason == LockReason.TOO_LATE
        assert status.lock_at == at(11, 15)

    def test_inside_grace_is_late_but_open(self, make_definition, occurrence_for, test_settings):
        """Test completion inside the grace period is allowed and flagged late."""
        status = completion_lock_status(occurrence_for(make_definition(grace_minutes=15)), at(11, 10), test_settings)

        assert status.locked is False
        assert status.is_late is True

    def test_custom_unlock_window(self, make_definition, occurrence_for, test_settings):
        """Test a per-task unlock window overrides the default."""
        status = completion_lock_status(
            occurrence_for(make_definition(unlock_before_minutes=60)), at(8, 0), test_settings
        )

        assert status.locked is False

    def test_anytime_mode(self, make_definition, occurrence_for, test_settings):
        """Test anytime tasks are never time-locked."""
        status = completion_lock_status(
            occurrence_for(make_definition(lock_mode=LockMode.ANYTIME)), at(2, 0), test_settings
        )

        assert status.locked is False
        assert status.reason == LockReason.ANYTIME

    def test_default_lock_mode_from_settings(self, make_definition, occurrence_for):
        """Test tasks without a lock mode use the configured default."""
        config = Settings(default_lock_mode="anytime")

        status = completion_lock_status(occurrence_for(make_definition()), at(2, 0), config)

        assert status.reason == LockReason.ANYTIME

    def test_always_on_never_locked(self, make_definition, occurrence_for, test_settings):
        """Test always-on tasks can be completed at any time."""
        definition = make_definition(execution_mode=ExecutionMode.ALWAYS_ON)

        assert completion_lock_status(occurrence_for(definition), at(2, 0), test_settings).locked is False

    def test_early_completion_allowed(self, make_definition, occurrence_for, test_settings):
        """Test early completion opens the lock and reports evidence requirements."""
        definition = make_definition(allow_early_completion=True, early_requires_reason=True)

        status = completion_lock_status(occurrence_for(definition), at(7, 0), test_settings)

        assert status.locked is False
        assert status.is_early is True
        assert status.allow_early_with_reason is True
        assert status.requires_reason is True
        assert status.requires_photo is False

    def test_already_completed(self, make_definition, occurrence_for, make_completion, test_settings):
        """Test a completed occurrence cannot be completed again."""
        occurrence = occurrence_for(make_definition(), [make_completion()])

        status = completion_lock_status(occurrence, at(9, 30), test_settings)

        assert status.locked is True
        assert status.reason == LockReason.ALREADY_COMPLETED


@pytest.mark.unit
class TestValidateCompletionTime:
    """Tests for validate_completion_time function."""

    def test_allowed(self, make_definition, occurrence_for, test_settings):
        """Test a completion inside the window is accepted."""
        decision = validate_completion_time(occurrence_for(make_definition()), at(9, 0), config=test_settings)

        assert decision.allowed is True
        assert decision.error_code is None

    def test_too_early_error_code(self, make_definition, occurrence_for, test_settings):
        """Test an early completion is rejected with the unlock instant."""
        decision = validate_completion_time(occurrence_for(make_definition()), at(8, 0), config=test_settings)

        assert decision.allowed is False
        assert decision.error_code == ErrorCode.ERR_TASK_LOCKED_UNTIL
        assert decision.unlock_at == at(8, 30)

    def test_naive_now_allowed_inside_window(self, make_definition, occurrence_for, test_settings):
        """Test a naive `now` inside the window is accepted."""
        decision = validate_completion_time(
            occurrence_for(make_definition()), datetime(2024, 3, 4, 9, 15), config=test_settings
        )

        assert decision.allowed is True

    def test_too_late_error_code(self, make_definition, occurrence_for, test_settings):
        """Test a completion after the grace period is rejected."""
        decision = validate_completion_time(
            occurrence_for(make_definition(grace_minutes=0)), at(12, 0), config=test_settings
        )

        assert decision.error_code == ErrorCode.ERR_TASK_LOCKED_LATE

    def test_manager_override(self, make_definition, occurrence_for, test_settings):
        """Test a manager override bypasses the time window."""
        decision = validate_completion_time(
            occurrence_for(make_definition()), at(8, 0), manager_override=True, config=test_settings
        )

        assert decision.allowed is True

    def test_override_cannot_complete_twice(self, make_definition, occurrence_for, make_completion, test_settings):
        """Test a manager override does not allow a second completion."""
        occurrence = occurrence_for(make_definition(), [make_completion()])

        decision = validate_completion_time(occurrence, at(9, 30), manager_override=True, config=test_settings)

        assert decision.allowed is False
        assert decision.error_code == ErrorCode.ERR_TASK_ALREADY_COMPLETED
