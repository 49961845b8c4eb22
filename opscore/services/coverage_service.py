"""Shift-aware task coverage.

Decides whether somebody is actually rostered to perform an occurrence. Coverage
is day-based: an occurrence is covered when any qualifying shift exists on its
business day, whatever the shift's hours. A shift qualifies when it is
published, has at least one approved assignment, matches the occurrence's role
(normalized) and sits at the occurrence's location (company-wide occurrences
match any location).
"""

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from typing import Any

from pydantic import ValidationError

from opscore.core.errors import PipelineDiagnostic, build_diagnostic
from opscore.core.logging import span
from opscore.domain.occurrence import CoverageReason, CoverageResult, TaskOccurrence
from opscore.domain.shift import Shift
from opscore.domain.task import ExecutionMode
from opscore.domain.view import ViewMode
from opscore.models.service_models import CoverageGroups


logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_role(role: str | None) -> str:
    """Case- and whitespace-insensitive form of a role name ("  Line  Cook" → "line cook")."""
    if not role:
        return ""
    return _WHITESPACE.sub(" ", role).strip().casefold()


def roles_match(left: str | None, right: str | None) -> bool:
    """Return True if both roles are set and equal after normalization."""
    normalized = normalize_role(left)
    return bool(normalized) and normalized == normalize_role(right)


def load_shifts(
    shifts: Iterable[Shift | Mapping[str, Any]],
    diagnostics: list[PipelineDiagnostic] | None = None,
) -> list[Shift]:
    """Validate raw roster rows, skipping the ones that cannot be read."""
    loaded: list[Shift] = []
    for raw in shifts:
        try:
            loaded.append(raw if isinstance(raw, Shift) else Shift.model_validate(raw))
        except (ValidationError, TypeError) as e:
            subject = raw.get("id") if isinstance(raw, Mapping) else None
            logger.warning("Skipping malformed shift %s: %s", subject, e)
            if diagnostics is not None:
                diagnostics.append(build_diagnostic(e, stage="shifts", subject_id=subject))
    return loaded


def check_coverage(occurrence: TaskOccurrence, shifts: Sequence[Shift], day: date) -> CoverageResult:
    """Check coverage for a single occurrence against the roster.

    Matching shifts are unioned; more than one match never blocks visibility.

    Args:
        occurrence: Occurrence to check
        shifts: Roster (any days; only `day` is considered)
        day: Business day to check

    Returns:
        CoverageResult with matching shift ids and the employees covering it
    """
    if occurrence.definition.execution_mode == ExecutionMode.ALWAYS_ON:
        return CoverageResult(covered=True, reason=CoverageReason.ALWAYS_ON)

    day_shifts = [s for s in shifts if s.shift_date == day and s.is_published]
    if not day_shifts:
        return CoverageResult(covered=False, reason=CoverageReason.NO_SHIFT)

    matching_ids: list[str] = []
    employees: list[str] = []
    malformed = 0
    last_mismatch = CoverageReason.NO_SHIFT

    for shift in day_shifts:
        if shift.is_malformed:
            malformed += 1
            continue

        if occurrence.location_id is not None and shift.location_id != occurrence.location_id:
            last_mismatch = CoverageReason.LOCATION_MISMATCH
            continue

        if occurrence.assigned_role and not roles_match(shift.role, occurrence.assigned_role):
            last_mismatch = CoverageReason.ROLE_MISMATCH
            continue

        approved = shift.approved_assignments
        if not approved:
            last_mismatch = CoverageReason.NO_APPROVED_ASSIGNMENTS
            continue

        # Directly assigned tasks need that employee on the shift
        if occurrence.assigned_employee_id and all(
            a.staff_id != occurrence.assigned_employee_id for a in approved
        ):
            last_mismatch = CoverageReason.EMPLOYEE_NOT_SCHEDULED
            continue

        matching_ids.append(shift.id)
        for assignment in approved:
            if assignment.staff_id not in employees:
                employees.append(assignment.staff_id)

    if not matching_ids:
        return CoverageResult(
            covered=False,
            reason=last_mismatch,
            shifts_checked=len(day_shifts),
            malformed_shifts=malformed,
        )

    return CoverageResult(
        covered=True,
        matching_shift_ids=tuple(matching_ids),
        covered_by_employees=tuple(employees),
        reason=CoverageReason.COVERED,
        shifts_checked=len(day_shifts),
        malformed_shifts=malformed,
    )


def annotate_coverage(occurrence: TaskOccurrence, shifts: Sequence[Shift], day: date | None = None) -> TaskOccurrence:
    """Return a copy carrying its coverage result and no-coverage flag."""
    coverage = check_coverage(occurrence, shifts, day or occurrence.occurrence_date)
    return occurrence.model_copy(update={"coverage": coverage, "no_coverage": not coverage.covered})


def apply_coverage(
    occurrences: Iterable[TaskOccurrence],
    shifts: Sequence[Shift],
    day: date | None = None,
    *,
    view_mode: ViewMode = ViewMode.EXECUTION,
) -> list[TaskOccurrence]:
    """Annotate occurrences with coverage and apply the view-mode policy.

    Execution mode drops uncovered occurrences (nobody rostered could act on them).
    Planning mode keeps them with no_coverage=True so the gap is visible.
    When `day` is None each occurrence is checked against its own date.
    """
    with span("coverage_service.apply_coverage"):
        result: list[TaskOccurrence] = []
        dropped = 0
        for occurrence in occurrences:
            annotated = annotate_coverage(occurrence, shifts, day)
            if view_mode == ViewMode.EXECUTION and annotated.no_coverage:
                dropped += 1
                continue
            result.append(annotated)

        if dropped:
            logger.debug("Dropped %d uncovered occurrences in %s mode", dropped, view_mode)
        return result


def group_by_coverage(
    occurrences: Iterable[TaskOccurrence], shifts: Sequence[Shift], day: date | None = None
) -> CoverageGroups:
    """Split occurrences into covered and uncovered (manager views)."""
    groups = CoverageGroups()
    for occurrence in occurrences:
        annotated = annotate_coverage(occurrence, shifts, day)
        if annotated.no_coverage:
            groups.no_coverage.append(annotated)
        else:
            groups.covered.append(annotated)
    return groups
