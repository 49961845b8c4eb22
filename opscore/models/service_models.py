"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, so every consuming
surface (dashboards, kiosk, mobile, calendar) reads the same shapes.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from opscore.core.errors import PipelineDiagnostic
from opscore.domain.occurrence import TaskOccurrence


class LockReason(StrEnum):
    """Why a completion action is or is not accepted."""

    NOT_LOCKED = "not_locked"
    ANYTIME = "anytime"
    TOO_EARLY = "too_early"
    TOO_LATE = "too_late"
    ALREADY_COMPLETED = "already_completed"


class TimeLockStatus(BaseModel):
    """Completion lock decision for one occurrence at one instant."""

    locked: bool
    reason: LockReason
    unlock_at: datetime | None = None
    lock_at: datetime | None = None
    minutes_until_unlock: int = 0
    is_early: bool = False
    is_late: bool = False
    allow_early_with_reason: bool = False
    requires_reason: bool = False
    requires_photo: bool = False


class CompletionDecision(BaseModel):
    """Result of validating a completion write."""

    allowed: bool
    error_code: str | None = None
    unlock_at: datetime | None = None


class CoverageGroups(BaseModel):
    """Occurrences split by coverage."""

    covered: list[TaskOccurrence] = Field(default_factory=list)
    no_coverage: list[TaskOccurrence] = Field(default_factory=list)


class DebugCounts(BaseModel):
    """How many occurrences each pipeline stage produced or removed."""

    definitions_in: int = 0
    definitions_invalid: int = 0
    archived: int = 0
    generated: int = 0
    completed_hidden: int = 0
    removed_by_location: int = 0
    removed_by_employee: int = 0
    removed_by_role: int = 0
    no_coverage: int = 0
    removed_by_coverage: int = 0
    visible: int = 0
    pending: int = 0
    overdue: int = 0
    completed: int = 0
    errors: int = 0


class PipelineResult(BaseModel):
    """Everything a consuming surface needs for one query."""

    occurrences: list[TaskOccurrence] = Field(default_factory=list)
    pending: list[TaskOccurrence] = Field(default_factory=list)
    overdue: list[TaskOccurrence] = Field(default_factory=list)
    completed: list[TaskOccurrence] = Field(default_factory=list)
    no_coverage: list[TaskOccurrence] = Field(default_factory=list)
    debug_counts: DebugCounts = Field(default_factory=DebugCounts)
    diagnostics: list[PipelineDiagnostic] = Field(default_factory=list)
