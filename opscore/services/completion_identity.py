"""Completion identity resolution.

Maps occurrence identities (materialized or virtual) back to their base task
definition and a per-day completion key, so one recurring definition carries an
independent completion state for every calendar day.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from pydantic import ValidationError

from opscore.core.calendar import format_day_key, parse_day_key
from opscore.core.config import constants
from opscore.core.errors import ErrorCategory, ErrorCode, PipelineDiagnostic, build_diagnostic
from opscore.core.logging import span
from opscore.domain.completion import TaskCompletion
from opscore.domain.occurrence import MaterializedIdentity, OccurrenceIdentity, TaskOccurrence, VirtualIdentity


logger = logging.getLogger(__name__)

# Legacy client ids: "<uuid>-virtual-2026-01-08", "<uuid>-completed-2026-01-08", optional "-0930" slot
_LEGACY_ID_PATTERN = re.compile(
    rf"^(?P<base>.+?)(?:{re.escape(constants.VIRTUAL_ID_MARKER)}|{re.escape(constants.COMPLETED_ID_MARKER)})"
    r"(?P<day>\d{4}-\d{2}-\d{2})(?:-(?P<slot>\d{4}))?$"
)


def parse_identity(key: str) -> OccurrenceIdentity:
    """Parse an occurrence key received from a client into a typed identity.

    Keys without a virtual/completed suffix are materialized row ids.
    """
    match = _LEGACY_ID_PATTERN.match(key)
    if match is None:
        return MaterializedIdentity(task_id=key)
    try:
        day = parse_day_key(match.group("day"))
    except ValueError:
        return MaterializedIdentity(task_id=key)
    return VirtualIdentity(definition_id=match.group("base"), occurrence_date=day)


def _as_identity(identity: OccurrenceIdentity | str) -> OccurrenceIdentity:
    return parse_identity(identity) if isinstance(identity, str) else identity


def base_id(identity: OccurrenceIdentity | str) -> str:
    """Canonical task definition id for an occurrence identity (identity for canonical ids)."""
    return _as_identity(identity).base_id


def occurrence_date_of(identity: OccurrenceIdentity | str, fallback: date) -> date:
    """Day an identity refers to; materialized ids carry none, so `fallback` is used."""
    resolved = _as_identity(identity)
    if isinstance(resolved, VirtualIdentity):
        return resolved.occurrence_date
    return fallback


def completion_key(task_id: str, day: date) -> str:
    """Stable per-day completion key, e.g. "task-1:2024-03-04"."""
    return f"{task_id}{constants.COMPLETION_KEY_SEPARATOR}{format_day_key(day)}"


def build_completion_index(
    completions: Iterable[TaskCompletion | Mapping[str, Any]],
    diagnostics: list[PipelineDiagnostic] | None = None,
) -> dict[str, TaskCompletion]:
    """Build a lookup of completions keyed by completion_key.

    Malformed rows are skipped. When two completions share a key the earliest
    one wins; the store is expected to reject the second write, so a duplicate
    here is reported rather than reconciled.

    Args:
        completions: Completion models or raw store rows
        diagnostics: Optional list that receives one entry per skipped row

    Returns:
        Mapping of completion key to completion
    """
    with span("completion_identity.build_completion_index"):
        index: dict[str, TaskCompletion] = {}
        for raw in completions:
            try:
                completion = raw if isinstance(raw, TaskCompletion) else TaskCompletion.model_validate(raw)
            except (ValidationError, TypeError) as e:
                subject = raw.get("id") if isinstance(raw, Mapping) else None
                logger.warning("Skipping malformed completion %s: %s", subject, e)
                if diagnostics is not None:
                    diagnostics.append(build_diagnostic(e, stage="completions", subject_id=subject))
                continue

            key = completion_key(completion.task_id, completion.occurrence_date)
            existing = index.get(key)
            if existing is not None:
                logger.warning("Duplicate completion for %s (%s, %s)", key, existing.id, completion.id)
                if diagnostics is not None:
                    diagnostics.append(
                        PipelineDiagnostic(
                            category=ErrorCategory.DUPLICATE_COMPLETION,
                            code=ErrorCode.ERR_DUPLICATE_COMPLETION,
                            message=f"Completion {completion.id} duplicates {existing.id}",
                            stage="completions",
                            subject_id=completion.id,
                        )
                    )
                if existing.completed_at <= completion.completed_at:
                    continue
            index[key] = completion

        logger.debug("Built completion index with %d keys", len(index))
        return index


def lookup_completion(occurrence: TaskOccurrence, index: Mapping[str, TaskCompletion]) -> TaskCompletion | None:
    """Find the completion recorded for this occurrence's (definition, day)."""
    day = occurrence_date_of(occurrence.identity, occurrence.occurrence_date)
    return index.get(completion_key(occurrence.base_id, day))


def attach_completion(occurrence: TaskOccurrence, index: Mapping[str, TaskCompletion]) -> TaskOccurrence:
    """Return a copy of the occurrence carrying its completion, if any."""
    completion = lookup_completion(occurrence, index)
    if completion is None:
        return occurrence
    return occurrence.model_copy(update={"completion": completion})


def attach_completions(
    occurrences: Iterable[TaskOccurrence], index: Mapping[str, TaskCompletion]
) -> list[TaskOccurrence]:
    return [attach_completion(occurrence, index) for occurrence in occurrences]
