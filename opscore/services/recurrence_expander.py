"""Recurrence expansion: task definitions → dated occurrences.

This is the only place calendar membership of a definition is decided. One-off
definitions produce their single occurrence on their start day. Recurring
definitions produce the template row itself on their start day and a virtual
occurrence on every later matching day. Completion and coverage state are not
computed here.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta

from opscore.core.calendar import CompanyCalendarConfig, combine, day_key, iter_days, local_time_of
from opscore.core.errors import PipelineDiagnostic, add_diagnostic, build_diagnostic
from opscore.core.logging import span
from opscore.core.recurrence_parser import last_day_of_month, matches_cron_day, recurrence_to_cron
from opscore.domain.completion import TaskCompletion
from opscore.domain.occurrence import MaterializedIdentity, TaskOccurrence, VirtualIdentity
from opscore.domain.task import (
    DailyRecurrence,
    MonthlyRecurrence,
    NoRecurrence,
    TaskDefinition,
    Weekday,
    WeeklyRecurrence,
)
from opscore.domain.view import PipelineOptions
from opscore.services.completion_identity import lookup_completion


logger = logging.getLogger(__name__)


def template_day(definition: TaskDefinition, calendar: CompanyCalendarConfig) -> date:
    """Business day of the definition's own start instant."""
    return day_key(definition.start_at, calendar)


def _monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _weeks_between(start: date, day: date) -> int:
    # Calendar weeks, Monday-based
    return (_monday_of(day) - _monday_of(start)).days // 7


def _months_between(start: date, day: date) -> int:
    return (day.year - start.year) * 12 + (day.month - start.month)


def _weekly_cron(weekdays: frozenset[Weekday]) -> str:
    return recurrence_to_cron(WeeklyRecurrence(weekdays=weekdays)) or ""


def _monthly_cron(day_of_month: int, day: date) -> str:
    # Clamp to the last day in months shorter than the rule's day
    if day_of_month > last_day_of_month(day):
        return "0 0 L * *"
    return recurrence_to_cron(MonthlyRecurrence(day=day_of_month)) or ""


def matches_date(definition: TaskDefinition, day: date, calendar: CompanyCalendarConfig) -> bool:
    """Return True if the definition has an occurrence on `day`.

    Raises:
        ValueError: If the recurrence rule is not one the engine knows
    """
    start_day = template_day(definition, calendar)
    if day < start_day:
        return False
    if definition.recurrence_end_date is not None and day > definition.recurrence_end_date:
        return False

    match definition.recurrence:
        case NoRecurrence():
            return day == start_day
        case DailyRecurrence(interval=interval):
            return (day - start_day).days % interval == 0
        case WeeklyRecurrence(weekdays=weekdays, interval=interval):
            days = weekdays or frozenset({Weekday(start_day.weekday())})
            return matches_cron_day(_weekly_cron(days), day) and _weeks_between(start_day, day) % interval == 0
        case MonthlyRecurrence(day=day_of_month, interval=interval):
            return (
                matches_cron_day(_monthly_cron(day_of_month, day), day)
                and _months_between(start_day, day) % interval == 0
            )
        case other:
            msg = f"Unknown recurrence rule for task {definition.id}: {other!r}"
            raise ValueError(msg)


def _effective_start(day: date, time_of_day: time, calendar: CompanyCalendarConfig) -> datetime:
    # Local times before the day-start boundary belong to the next calendar date
    if time_of_day < calendar.day_start:
        return combine(day + timedelta(days=1), time_of_day, calendar)
    return combine(day, time_of_day, calendar)


def build_occurrence(definition: TaskDefinition, day: date, calendar: CompanyCalendarConfig) -> TaskOccurrence:
    """Construct the occurrence of a definition on a day it matches."""
    if day == template_day(definition, calendar):
        identity: MaterializedIdentity | VirtualIdentity = MaterializedIdentity(task_id=definition.id)
        start_at = definition.start_at
    else:
        identity = VirtualIdentity(definition_id=definition.id, occurrence_date=day)
        start_at = _effective_start(day, local_time_of(definition.start_at, calendar), calendar)

    delta = definition.deadline_delta()
    return TaskOccurrence(
        identity=identity,
        definition=definition,
        occurrence_date=day,
        start_at=start_at,
        deadline_at=start_at + delta if delta is not None else None,
    )


def _keep(
    occurrence: TaskOccurrence,
    options: PipelineOptions,
    completion_index: Mapping[str, TaskCompletion] | None,
) -> bool:
    if not options.include_virtual and occurrence.is_virtual:
        return False
    if not options.include_completed and completion_index is not None:
        return lookup_completion(occurrence, completion_index) is None
    return True


def occurrences_for_date(
    definitions: Iterable[TaskDefinition],
    day: date,
    calendar: CompanyCalendarConfig,
    *,
    options: PipelineOptions | None = None,
    completion_index: Mapping[str, TaskCompletion] | None = None,
    diagnostics: list[PipelineDiagnostic] | None = None,
) -> list[TaskOccurrence]:
    """Expand definitions into the occurrences falling on one business day.

    Args:
        definitions: Validated task definitions (archived ones are skipped)
        day: Business day to expand
        calendar: Company day-boundary policy
        options: include_virtual / include_completed switches
        completion_index: Needed only to honor include_completed=False
        diagnostics: Optional list that receives one entry per failed definition,
            shared across days without repeating a failure

    Returns:
        Occurrences sorted by effective start, ties broken by definition id
    """
    options = options or PipelineOptions()
    with span("recurrence_expander.occurrences_for_date"):
        seen: set[str] = set()
        result: list[TaskOccurrence] = []

        for definition in definitions:
            if definition.is_archived:
                continue
            try:
                if not matches_date(definition, day, calendar):
                    continue
                occurrence = build_occurrence(definition, day, calendar)
            except (ValueError, TypeError, OverflowError) as e:
                logger.warning("Failed to expand task %s on %s: %s", definition.id, day, e)
                if diagnostics is not None:
                    add_diagnostic(diagnostics, build_diagnostic(e, stage="expansion", subject_id=definition.id))
                continue

            if occurrence.key in seen or not _keep(occurrence, options, completion_index):
                continue
            seen.add(occurrence.key)
            result.append(occurrence)

        result.sort(key=TaskOccurrence.sort_key)
        logger.debug("Expanded %d occurrences for %s", len(result), day)
        return result


def occurrences_for_range(
    definitions: Iterable[TaskDefinition],
    start: date,
    end: date,
    calendar: CompanyCalendarConfig,
    *,
    options: PipelineOptions | None = None,
    completion_index: Mapping[str, TaskCompletion] | None = None,
    diagnostics: list[PipelineDiagnostic] | None = None,
) -> list[TaskOccurrence]:
    """Union of occurrences_for_date over [start, end], de-duplicated by identity."""
    with span("recurrence_expander.occurrences_for_range"):
        definitions = list(definitions)
        seen: set[str] = set()
        result: list[TaskOccurrence] = []
        for day in iter_days(start, end):
            for occurrence in occurrences_for_date(
                definitions,
                day,
                calendar,
                options=options,
                completion_index=completion_index,
                diagnostics=diagnostics,
            ):
                if occurrence.key in seen:
                    continue
                seen.add(occurrence.key)
                result.append(occurrence)

        result.sort(key=TaskOccurrence.sort_key)
        return result
