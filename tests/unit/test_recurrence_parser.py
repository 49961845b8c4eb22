"""Unit tests for recurrence parsing utilities."""

from datetime import UTC, date, datetime, time, timedelta

import pytest
from pydantic import ValidationError

from opscore.core.recurrence_parser import (
    describe_recurrence,
    last_day_of_month,
    matches_cron_day,
    normalize_days_of_week,
    parse_recurrence,
    recurrence_from_cron,
    recurrence_to_cron,
)
from opscore.domain import (
    DailyRecurrence,
    MonthlyRecurrence,
    NoRecurrence,
    Weekday,
    WeeklyRecurrence,
)


MON_WED = frozenset({Weekday.MONDAY, Weekday.WEDNESDAY})
WORKWEEK = frozenset({Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY})


@pytest.mark.unit
class TestNormalizeDaysOfWeek:
    """Tests for normalize_days_of_week function."""

    def test_sunday_based_numbers(self):
        """Test the usual 0-6 store format with Sunday = 0."""
        assert normalize_days_of_week([1, 3]) == MON_WED
        assert normalize_days_of_week([0]) == frozenset({Weekday.SUNDAY})

    def test_legacy_monday_based_numbers(self):
        """Test legacy 1-7 values are detected by a 7 and mapped correctly."""
        assert normalize_days_of_week([1, 7]) == frozenset({Weekday.MONDAY, Weekday.SUNDAY})

    def test_numeric_strings(self):
        """Test numbers stored as strings are accepted."""
        assert normalize_days_of_week(["1", "3"]) == MON_WED

    def test_weekday_names(self):
        """Test full names and three-letter prefixes."""
        assert normalize_days_of_week(["mon", "Wednesday"]) == MON_WED

    def test_empty(self):
        """Test missing or empty lists yield an empty set."""
        assert normalize_days_of_week(None) == frozenset()
        assert normalize_days_of_week([]) == frozenset()

    def test_invalid_name_raises(self):
        """Test an unrecognised weekday name fails."""
        with pytest.raises(ValueError, match="Invalid weekday"):
            normalize_days_of_week(["funday"])

    def test_out_of_range_raises(self):
        """Test numbers outside 0-7 fail."""
        with pytest.raises(ValueError, match="Invalid recurrence days of week"):
            normalize_days_of_week([9])


@pytest.mark.unit
class TestRecurrenceFromCron:
    """Tests for recurrence_from_cron function."""

    def test_daily(self):
        """Test a daily expression."""
        assert recurrence_from_cron("0 8 * * *") == DailyRecurrence()

    def test_weekly_list(self):
        """Test a day-of-week list."""
        assert recurrence_from_cron("0 8 * * 1,3") == WeeklyRecurrence(weekdays=MON_WED)

    def test_weekly_range(self):
        """Test a day-of-week range."""
        assert recurrence_from_cron("30 9 * * 1-5") == WeeklyRecurrence(weekdays=WORKWEEK)

    def test_sunday_as_seven(self):
        """Test CRON's alternative Sunday = 7."""
        assert recurrence_from_cron("0 8 * * 7") == WeeklyRecurrence(weekdays=frozenset({Weekday.SUNDAY}))

    def test_monthly(self):
        """Test a fixed day of month."""
        assert recurrence_from_cron("0 8 15 * *") == MonthlyRecurrence(day=15)

    def test_monthly_last_day(self):
        """Test "L" maps to day 31, which clamps to the last day of every month."""
        assert recurrence_from_cron("0 8 L * *") == MonthlyRecurrence(day=31)

    def test_month_restriction_unsupported(self):
        """Test expressions limited to certain months are rejected."""
        with pytest.raises(ValueError, match="Unsupported recurrence format"):
            recurrence_from_cron("0 8 1 6 *")

    def test_invalid_expression(self):
        """Test garbage is rejected."""
        with pytest.raises(ValueError, match="Invalid recurrence format"):
            recurrence_from_cron("every now and then")


@pytest.mark.unit
class TestParseRecurrence:
    """Tests for parse_recurrence function."""

    def test_missing_is_one_off(self):
        """Test rows without recurrence are one-off tasks."""
        assert parse_recurrence({}) == NoRecurrence()
        assert parse_recurrence({"recurrence": "none"}) == NoRecurrence()

    def test_daily_with_interval(self):
        """Test daily recurrence carries its interval."""
        assert parse_recurrence({"recurrence": "daily", "recurrence_interval": 2}) == DailyRecurrence(interval=2)

    def test_weekly_with_days(self):
        """Test weekly recurrence with stored days of week."""
        result = parse_recurrence({"recurrence_type": "weekly", "recurrence_days_of_week": [1, 3]})

        assert result == WeeklyRecurrence(weekdays=MON_WED)

    def test_weekly_without_days(self):
        """Test weekly recurrence with no days keeps an empty set (start weekday applies)."""
        assert parse_recurrence({"recurrence": "weekly"}) == WeeklyRecurrence()

    def test_weekdays_tag(self):
        """Test the "weekdays" shorthand is Monday to Friday."""
        assert parse_recurrence({"recurrence": "Weekdays"}) == WeeklyRecurrence(weekdays=WORKWEEK)

    def test_monthly_explicit_day(self):
        """Test monthly recurrence with an explicit day of month."""
        result = parse_recurrence({"recurrence": "monthly", "recurrence_day_of_month": 15, "recurrence_interval": 3})

        assert result == MonthlyRecurrence(day=15, interval=3)

    def test_monthly_falls_back_to_start_day(self):
        """Test monthly recurrence without a day uses the start day's day of month."""
        result = parse_recurrence({"recurrence": "monthly", "start_at": "2024-01-31T09:00:00Z"})

        assert result == MonthlyRecurrence(day=31)

    def test_monthly_without_any_day_raises(self):
        """Test monthly recurrence with no way to find the day fails."""
        with pytest.raises(ValueError, match="Invalid recurrence format"):
            parse_recurrence({"recurrence": "monthly"})

    def test_cron_expression(self):
        """Test CRON expressions are accepted."""
        assert parse_recurrence({"recurrence": "0 8 * * 1,3"}) == WeeklyRecurrence(weekdays=MON_WED)

    def test_unknown_tag_raises(self):
        """Test an unknown recurrence tag fails."""
        with pytest.raises(ValueError, match="Invalid recurrence format"):
            parse_recurrence({"recurrence": "fortnightly"})


@pytest.mark.unit
class TestRecurrenceToCron:
    """Tests for recurrence_to_cron and matches_cron_day."""

    def test_render(self):
        """Test each rule renders to the expected expression."""
        assert recurrence_to_cron(NoRecurrence()) is None
        assert recurrence_to_cron(DailyRecurrence()) == "0 0 * * *"
        assert recurrence_to_cron(WeeklyRecurrence(weekdays=MON_WED), time(9, 0)) == "0 9 * * 1,3"
        assert recurrence_to_cron(MonthlyRecurrence(day=15)) == "0 0 15 * *"

    def test_weekly_without_days_not_representable(self):
        """Test weekly recurrence with no days has no standalone expression."""
        assert recurrence_to_cron(WeeklyRecurrence()) is None

    def test_matches_cron_day(self):
        """Test day matching against a weekly expression."""
        assert matches_cron_day("0 0 * * 1", date(2024, 3, 4))
        assert not matches_cron_day("0 0 * * 1", date(2024, 3, 5))

    def test_matches_last_day(self):
        """Test "L" matches only the last day of the month."""
        assert matches_cron_day("0 0 L * *", date(2024, 2, 29))
        assert not matches_cron_day("0 0 L * *", date(2024, 2, 28))

    def test_last_day_of_month(self):
        """Test leap and non-leap Februaries."""
        assert last_day_of_month(date(2024, 2, 10)) == 29
        assert last_day_of_month(date(2023, 2, 10)) == 28


@pytest.mark.unit
class TestDescribeRecurrence:
    """Tests for describe_recurrence function."""

    def test_one_off(self):
        """Test a one-off task description."""
        assert describe_recurrence(NoRecurrence(), time(14, 30)) == "once at 2:30 PM"

    def test_daily(self):
        """Test daily descriptions with and without an interval."""
        assert describe_recurrence(DailyRecurrence()) == "daily"
        assert describe_recurrence(DailyRecurrence(interval=3)) == "every 3 days"

    def test_weekly(self):
        """Test weekly description lists the days in order."""
        assert describe_recurrence(WeeklyRecurrence(weekdays=MON_WED), time(9, 0)) == (
            "every Monday, Wednesday at 9:00 AM"
        )

    def test_weekly_interval(self):
        """Test weekly description with an interval."""
        rule = WeeklyRecurrence(weekdays=frozenset({Weekday.MONDAY}), interval=2)

        assert describe_recurrence(rule) == "every 2 weeks on Monday"

    def test_monthly_clamped(self):
        """Test late days of month mention the clamp."""
        assert describe_recurrence(MonthlyRecurrence(day=31), time(0, 0)) == (
            "monthly on the 31st at midnight (last day in shorter months)"
        )


@pytest.mark.unit
class TestTaskDefinitionRecurrence:
    """Tests for loose recurrence rows accepted by TaskDefinition."""

    def test_string_tag_parsed(self, make_definition):
        """Test a string tag with ad hoc fields becomes a typed rule."""
        definition = make_definition(recurrence="weekly", recurrence_days_of_week=[1, 3])

        assert definition.recurrence == WeeklyRecurrence(weekdays=MON_WED)
        assert definition.is_recurring is True

    def test_recurrence_type_column(self, make_definition):
        """Test the recurrence_type column is read when recurrence is absent."""
        definition = make_definition(recurrence_type="daily")

        assert definition.recurrence == DailyRecurrence()

    def test_structured_rule(self, make_definition):
        """Test an already structured rule is accepted as-is."""
        definition = make_definition(recurrence={"kind": "monthly", "day": 10})

        assert definition.recurrence == MonthlyRecurrence(day=10)

    def test_unknown_recurrence_fails_validation(self, make_definition):
        """Test an unknown tag surfaces as a validation error."""
        with pytest.raises(ValidationError, match="Invalid recurrence format"):
            make_definition(recurrence="fortnightly")

    def test_employee_and_role_rejected(self, make_definition):
        """Test a task cannot be assigned to both an employee and a role."""
        with pytest.raises(ValidationError, match="both an employee and a role"):
            make_definition(assigned_employee_id="emp-1", assigned_role="Cook")

    def test_naive_start_is_utc(self, make_definition):
        """Test naive start instants are treated as UTC."""
        definition = make_definition(start_at=datetime(2024, 3, 4, 9, 0))

        assert definition.start_at == datetime(2024, 3, 4, 9, 0, tzinfo=UTC)

    def test_deadline_delta_prefers_offset(self, make_definition):
        """Test deadline offset wins over duration, and duration is the fallback."""
        with_offset = make_definition(deadline_offset_minutes=60, duration_minutes=15)
        duration_only = make_definition(deadline_offset_minutes=None, duration_minutes=15)

        assert with_offset.deadline_delta() == timedelta(hours=1)
        assert duration_only.deadline_delta() == timedelta(minutes=15)
        assert make_definition(deadline_offset_minutes=None).deadline_delta() is None
