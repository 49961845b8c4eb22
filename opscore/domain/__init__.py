"""Domain models and DTOs."""

from opscore.domain.completion import CompletionMode, TaskCompletion
from opscore.domain.occurrence import (
    CoverageReason,
    CoverageResult,
    MaterializedIdentity,
    OccurrenceIdentity,
    OccurrenceStatus,
    TaskOccurrence,
    VirtualIdentity,
)
from opscore.domain.shift import ApprovalStatus, Shift, ShiftAssignment
from opscore.domain.task import (
    DailyRecurrence,
    ExecutionMode,
    LockMode,
    MonthlyRecurrence,
    NoRecurrence,
    Recurrence,
    TaskDefinition,
    TaskPriority,
    TemplateStatus,
    Weekday,
    WeeklyRecurrence,
)
from opscore.domain.view import PipelineFilters, PipelineOptions, ViewMode


__all__ = [
    "ApprovalStatus",
    "CompletionMode",
    "CoverageReason",
    "CoverageResult",
    "DailyRecurrence",
    "ExecutionMode",
    "LockMode",
    "MaterializedIdentity",
    "MonthlyRecurrence",
    "NoRecurrence",
    "OccurrenceIdentity",
    "OccurrenceStatus",
    "PipelineFilters",
    "PipelineOptions",
    "Recurrence",
    "Shift",
    "ShiftAssignment",
    "TaskCompletion",
    "TaskDefinition",
    "TaskOccurrence",
    "TaskPriority",
    "TemplateStatus",
    "ViewMode",
    "VirtualIdentity",
    "Weekday",
    "WeeklyRecurrence",
]
