"""Unified task visibility pipeline.

The single entry point every surface (manager dashboards, per-employee
timelines, kiosk, mobile, calendar) calls, so they all agree on the same
occurrences. Stages, in order:

1. Validate inputs (malformed rows are skipped and counted)
2. Expand definitions into occurrences (recurrence_expander)
3. Attach per-day completion state (completion_identity)
4. Apply location / employee / role filters
5. Apply shift coverage and the view-mode policy (coverage_service)
6. Compute overdue (covered, now > deadline and no completion)
7. Group into pending / overdue / completed / no_coverage

debug_counts records what each stage removed, to answer "why don't I see this
task" without re-deriving the pipeline by hand.
"""

import hashlib
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from opscore.core.calendar import CompanyCalendarConfig, as_aware, format_day_key, iter_days, today, tomorrow
from opscore.core.config import Settings, constants, settings
from opscore.core.errors import (
    ErrorCategory,
    ErrorCode,
    InvalidPipelineInputError,
    PipelineDiagnostic,
    build_diagnostic,
)
from opscore.core.logging import log_with_company_context, span
from opscore.domain.completion import TaskCompletion
from opscore.domain.occurrence import OccurrenceStatus, TaskOccurrence
from opscore.domain.shift import Shift
from opscore.domain.task import TaskDefinition
from opscore.domain.view import PipelineFilters, PipelineOptions, ViewMode
from opscore.models.service_models import DebugCounts, PipelineResult
from opscore.services.completion_identity import attach_completion, build_completion_index
from opscore.services.coverage_service import annotate_coverage, load_shifts, roles_match
from opscore.services.recurrence_expander import occurrences_for_date


logger = logging.getLogger(__name__)

DefinitionInput = TaskDefinition | Mapping[str, Any]
ShiftInput = Shift | Mapping[str, Any]
CompletionInput = TaskCompletion | Mapping[str, Any]


def _require_list(value: object, name: str) -> None:
    if value is None:
        msg = f"{name} must be a list, got None"
        raise InvalidPipelineInputError(msg)
    if isinstance(value, str | bytes | Mapping):
        msg = f"{name} must be a list, got {type(value).__name__}"
        raise InvalidPipelineInputError(msg)


def _resolve_view_mode(view_mode: ViewMode | str) -> ViewMode:
    try:
        return ViewMode(view_mode)
    except ValueError as e:
        msg = f"Unknown view mode: {view_mode}"
        raise InvalidPipelineInputError(msg) from e


def load_definitions(
    definitions: Iterable[DefinitionInput],
    diagnostics: list[PipelineDiagnostic] | None = None,
) -> list[TaskDefinition]:
    """Validate raw task rows, skipping the ones that cannot be read."""
    loaded: list[TaskDefinition] = []
    for raw in definitions:
        try:
            loaded.append(raw if isinstance(raw, TaskDefinition) else TaskDefinition.model_validate(raw))
        except (ValidationError, TypeError) as e:
            subject = raw.get("id") if isinstance(raw, Mapping) else None
            logger.warning("Skipping malformed task definition %s: %s", subject, e)
            if diagnostics is not None:
                diagnostics.append(build_diagnostic(e, stage="definitions", subject_id=subject))
    return loaded


def _matches_location(occurrence: TaskOccurrence, filters: PipelineFilters) -> bool:
    # Company-wide tasks belong to every location
    return filters.location_id is None or occurrence.location_id in (None, filters.location_id)


def _matches_employee(occurrence: TaskOccurrence, filters: PipelineFilters) -> bool:
    if filters.employee_id is None:
        return True
    if occurrence.assigned_employee_id == filters.employee_id:
        return True
    return bool(occurrence.assigned_role) and any(
        roles_match(occurrence.assigned_role, role) for role in filters.employee_roles
    )


def _matches_role(occurrence: TaskOccurrence, filters: PipelineFilters) -> bool:
    return filters.role is None or roles_match(occurrence.assigned_role, filters.role)


def _report_malformed_shifts(roster: Sequence[Shift], day: date, diagnostics: list[PipelineDiagnostic]) -> None:
    for shift in roster:
        if shift.shift_date == day and shift.is_malformed:
            diagnostics.append(
                PipelineDiagnostic(
                    category=ErrorCategory.MALFORMED_SHIFT,
                    code=ErrorCode.ERR_MALFORMED_SHIFT,
                    message=f"Shift {shift.id} is missing a role or location",
                    stage="coverage",
                    subject_id=shift.id,
                )
            )


def _run_day(  # noqa: PLR0913
    definitions: Sequence[TaskDefinition],
    day: date,
    roster: Sequence[Shift],
    completion_index: Mapping[str, TaskCompletion],
    *,
    now: datetime,
    calendar: CompanyCalendarConfig,
    filters: PipelineFilters,
    view_mode: ViewMode,
    options: PipelineOptions,
    counts: DebugCounts,
    diagnostics: list[PipelineDiagnostic],
) -> list[TaskOccurrence]:
    """Stages 2-6 for one business day."""
    expanded = occurrences_for_date(
        definitions,
        day,
        calendar,
        options=PipelineOptions(include_virtual=options.include_virtual),
        diagnostics=diagnostics,
    )
    counts.generated += len(expanded)
    _report_malformed_shifts(roster, day, diagnostics)

    visible: list[TaskOccurrence] = []
    for occurrence in expanded:
        occurrence = attach_completion(occurrence, completion_index)
        if not options.include_completed and occurrence.is_completed:
            counts.completed_hidden += 1
            continue

        if not _matches_location(occurrence, filters):
            counts.removed_by_location += 1
            continue
        if not _matches_employee(occurrence, filters):
            counts.removed_by_employee += 1
            continue
        if not _matches_role(occurrence, filters):
            counts.removed_by_role += 1
            continue

        try:
            occurrence = annotate_coverage(occurrence, roster, day)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Coverage check failed for %s: %s", occurrence.key, e)
            diagnostics.append(build_diagnostic(e, stage="coverage", subject_id=occurrence.key))
            continue

        if occurrence.no_coverage:
            counts.no_coverage += 1
            if view_mode == ViewMode.EXECUTION:
                counts.removed_by_coverage += 1
                continue

        # Uncovered occurrences report as gaps, never as overdue
        is_overdue = not occurrence.no_coverage and occurrence.overdue_at(now)
        visible.append(occurrence.model_copy(update={"is_overdue": is_overdue}))

    return visible


def _assemble(
    occurrences: list[TaskOccurrence],
    counts: DebugCounts,
    diagnostics: list[PipelineDiagnostic],
) -> PipelineResult:
    """Stage 7: group by status and finish the counters."""
    occurrences.sort(key=TaskOccurrence.sort_key)
    result = PipelineResult(occurrences=occurrences)
    buckets = {
        OccurrenceStatus.PENDING: result.pending,
        OccurrenceStatus.OVERDUE: result.overdue,
        OccurrenceStatus.COMPLETED: result.completed,
        OccurrenceStatus.NO_COVERAGE: result.no_coverage,
    }
    for occurrence in occurrences:
        buckets[occurrence.status].append(occurrence)

    counts.visible = len(occurrences)
    counts.pending = len(result.pending)
    counts.overdue = len(result.overdue)
    counts.completed = len(result.completed)
    counts.errors = len(diagnostics)
    result.debug_counts = counts
    result.diagnostics = diagnostics[: constants.MAX_DIAGNOSTICS]
    return result


def _prepare(
    definitions: Sequence[DefinitionInput] | None,
    shifts: Sequence[ShiftInput] | None,
    completions: Sequence[CompletionInput] | None,
    diagnostics: list[PipelineDiagnostic],
) -> tuple[list[TaskDefinition], list[Shift], dict[str, TaskCompletion], DebugCounts]:
    _require_list(definitions, "definitions")
    _require_list(shifts, "shifts")
    _require_list(completions, "completions")

    counts = DebugCounts(definitions_in=len(definitions))
    loaded = load_definitions(definitions, diagnostics)
    counts.definitions_invalid = counts.definitions_in - len(loaded)
    counts.archived = sum(1 for d in loaded if d.is_archived)

    roster = load_shifts(shifts, diagnostics)
    index = build_completion_index(completions, diagnostics)
    return loaded, roster, index, counts


def run_for_date(  # noqa: PLR0913
    definitions: Sequence[DefinitionInput] | None,
    day: date,
    shifts: Sequence[ShiftInput] | None,
    completions: Sequence[CompletionInput] | None,
    *,
    now: datetime,
    calendar: CompanyCalendarConfig,
    filters: PipelineFilters | None = None,
    view_mode: ViewMode | str = ViewMode.EXECUTION,
    options: PipelineOptions | None = None,
) -> PipelineResult:
    """Run the pipeline for one business day.

    Args:
        definitions: Task definitions (models or raw store rows)
        day: Business day to compute
        shifts: Shift roster (models or raw store rows)
        completions: Completions (models or raw store rows)
        now: Current instant, used for overdue; never read from the system clock
        calendar: Company day-boundary policy
        filters: Location / employee / role scope
        view_mode: execution (covered only) or planning (all, gaps flagged)
        options: include_completed / include_virtual

    Returns:
        PipelineResult with grouped occurrences, debug counts and diagnostics

    Raises:
        InvalidPipelineInputError: If an input list is missing or the view mode is unknown
    """
    mode = _resolve_view_mode(view_mode)
    now = as_aware(now)
    filters = filters or PipelineFilters()
    options = options or PipelineOptions()

    with span("pipeline_service.run_for_date"):
        diagnostics: list[PipelineDiagnostic] = []
        loaded, roster, index, counts = _prepare(definitions, shifts, completions, diagnostics)

        visible = _run_day(
            loaded,
            day,
            roster,
            index,
            now=now,
            calendar=calendar,
            filters=filters,
            view_mode=mode,
            options=options,
            counts=counts,
            diagnostics=diagnostics,
        )
        result = _assemble(visible, counts, diagnostics)

        log_with_company_context(
            logger,
            "info",
            "Task pipeline finished",
            company_id=calendar.company_id,
            day=format_day_key(day),
            view_mode=str(mode),
            **result.debug_counts.model_dump(),
        )
        return result


def run_for_range(  # noqa: PLR0913
    definitions: Sequence[DefinitionInput] | None,
    start_day: date,
    end_day: date,
    shifts: Sequence[ShiftInput] | None,
    completions: Sequence[CompletionInput] | None,
    *,
    now: datetime,
    calendar: CompanyCalendarConfig,
    filters: PipelineFilters | None = None,
    view_mode: ViewMode | str = ViewMode.EXECUTION,
    options: PipelineOptions | None = None,
    config: Settings = settings,
) -> PipelineResult:
    """Run the pipeline for every business day in [start_day, end_day].

    Each occurrence is checked for coverage against its own day. The result is
    de-duplicated by occurrence identity.

    Raises:
        InvalidPipelineInputError: If inputs are missing, the range is reversed, or
            longer than the configured maximum
    """
    mode = _resolve_view_mode(view_mode)
    now = as_aware(now)
    if end_day < start_day:
        msg = f"Range end {end_day} is before start {start_day}"
        raise InvalidPipelineInputError(msg)
    if (end_day - start_day).days + 1 > config.max_range_days:
        msg = f"Range of {(end_day - start_day).days + 1} days exceeds the maximum of {config.max_range_days}"
        raise InvalidPipelineInputError(msg)

    filters = filters or PipelineFilters()
    options = options or PipelineOptions()

    with span("pipeline_service.run_for_range"):
        diagnostics: list[PipelineDiagnostic] = []
        loaded, roster, index, counts = _prepare(definitions, shifts, completions, diagnostics)

        seen: set[str] = set()
        combined: list[TaskOccurrence] = []
        for day in iter_days(start_day, end_day):
            for occurrence in _run_day(
                loaded,
                day,
                roster,
                index,
                now=now,
                calendar=calendar,
                filters=filters,
                view_mode=mode,
                options=options,
                counts=counts,
                diagnostics=diagnostics,
            ):
                if occurrence.key in seen:
                    continue
                seen.add(occurrence.key)
                combined.append(occurrence)

        result = _assemble(combined, counts, diagnostics)

        log_with_company_context(
            logger,
            "info",
            "Task pipeline range finished",
            company_id=calendar.company_id,
            start_day=format_day_key(start_day),
            end_day=format_day_key(end_day),
            view_mode=str(mode),
            **result.debug_counts.model_dump(),
        )
        return result


def today_tasks(
    definitions: Sequence[DefinitionInput] | None,
    shifts: Sequence[ShiftInput] | None,
    completions: Sequence[CompletionInput] | None,
    *,
    now: datetime,
    calendar: CompanyCalendarConfig,
    filters: PipelineFilters | None = None,
    view_mode: ViewMode | str = ViewMode.EXECUTION,
    options: PipelineOptions | None = None,
) -> PipelineResult:
    """Today's occurrences for the company, completed ones included."""
    return run_for_date(
        definitions,
        today(calendar, now),
        shifts,
        completions,
        now=now,
        calendar=calendar,
        filters=filters,
        view_mode=view_mode,
        options=options,
    )


def tomorrow_tasks(
    definitions: Sequence[DefinitionInput] | None,
    shifts: Sequence[ShiftInput] | None,
    completions: Sequence[CompletionInput] | None,
    *,
    now: datetime,
    calendar: CompanyCalendarConfig,
    filters: PipelineFilters | None = None,
    view_mode: ViewMode | str = ViewMode.EXECUTION,
    options: PipelineOptions | None = None,
) -> PipelineResult:
    """Tomorrow's occurrences; completed ones are hidden unless options say otherwise."""
    return run_for_date(
        definitions,
        tomorrow(calendar, now),
        shifts,
        completions,
        now=now,
        calendar=calendar,
        filters=filters,
        view_mode=view_mode,
        options=options or PipelineOptions(include_completed=False),
    )


def happening_now(occurrences: Iterable[TaskOccurrence], now: datetime) -> list[TaskOccurrence]:
    """Uncompleted occurrences whose active window contains `now`.

    The window runs from start to deadline, or for a default 30 minutes when the
    task has no deadline.
    """
    now = as_aware(now)
    default_window = timedelta(minutes=constants.DEFAULT_ACTIVE_WINDOW_MINUTES)
    return [
        occurrence
        for occurrence in occurrences
        if not occurrence.is_completed
        and occurrence.start_at <= now <= (occurrence.deadline_at or occurrence.start_at + default_window)
    ]


def build_cache_key(  # noqa: PLR0913
    *,
    definitions_version: str,
    shifts_version: str,
    completions_version: str,
    day: date,
    filters: PipelineFilters | None = None,
    view_mode: ViewMode | str = ViewMode.EXECUTION,
    options: PipelineOptions | None = None,
) -> str:
    """Cache key for a pipeline result.

    Output is deterministic for identical inputs, so results can be cached per
    snapshot version without identity drift.
    """
    scope = (filters or PipelineFilters()).model_dump_json() + (options or PipelineOptions()).model_dump_json()
    digest = hashlib.sha256(scope.encode()).hexdigest()[:16]
    return ":".join(
        [
            constants.CACHE_KEY_PREFIX,
            definitions_version,
            shifts_version,
            completions_version,
            format_day_key(day),
            str(_resolve_view_mode(view_mode)),
            digest,
        ]
    )
