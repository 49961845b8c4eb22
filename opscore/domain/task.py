"""Task definition domain models and enums."""

from datetime import UTC, date, datetime, timedelta
from enum import IntEnum, StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Weekday(IntEnum):
    """Day of week, Monday = 0 (matches date.weekday())."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TemplateStatus(StrEnum):
    """Lifecycle state of a task definition."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class ExecutionMode(StrEnum):
    """Whether a task depends on somebody being rostered."""

    SHIFT_BASED = "shift_based"  # Visible to staff only when a qualifying shift exists
    ALWAYS_ON = "always_on"  # Never gated by the roster


class LockMode(StrEnum):
    """Whether completion is restricted to the scheduled window."""

    SCHEDULED = "scheduled"
    ANYTIME = "anytime"


class NoRecurrence(BaseModel):
    """One-off task."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


class DailyRecurrence(BaseModel):
    """Every `interval` days from the start day."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["daily"] = "daily"
    interval: int = Field(default=1, ge=1)


class WeeklyRecurrence(BaseModel):
    """On the given weekdays, every `interval` calendar weeks (weeks start Monday).

    An empty weekday set means "the weekday of the start day".
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["weekly"] = "weekly"
    weekdays: frozenset[Weekday] = Field(default_factory=frozenset)
    interval: int = Field(default=1, ge=1)


class MonthlyRecurrence(BaseModel):
    """On day-of-month `day`, every `interval` months.

    In months shorter than `day` the occurrence falls on the last day of the month.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["monthly"] = "monthly"
    day: int = Field(..., ge=1, le=31)
    interval: int = Field(default=1, ge=1)


Recurrence = Annotated[
    NoRecurrence | DailyRecurrence | WeeklyRecurrence | MonthlyRecurrence,
    Field(discriminator="kind"),
]


class TaskDefinition(BaseModel):
    """Stored task definition (one-off or recurring template)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Unique task ID from the scheduling store")
    company_id: str = Field(..., description="Owning company")
    location_id: str | None = Field(default=None, description="Location, or None for company-wide tasks")
    assigned_employee_id: str | None = Field(default=None, description="Directly assigned employee")
    assigned_role: str | None = Field(default=None, description="Role name the task is assigned to")
    title: str = Field(..., description="Task title (e.g., 'Clean fryer')")
    description: str = Field(default="", description="Detailed task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    status: TemplateStatus = Field(default=TemplateStatus.ACTIVE, description="Template lifecycle state")
    recurrence: Recurrence = Field(default_factory=NoRecurrence, description="Recurrence rule")
    recurrence_end_date: date | None = Field(default=None, description="Last day an occurrence may fall on")
    start_at: datetime = Field(..., description="Anchor instant; its local time is reused on every occurrence")
    deadline_offset_minutes: int | None = Field(default=None, ge=0, description="Deadline relative to start")
    duration_minutes: int | None = Field(default=None, ge=0, description="Expected duration")
    execution_mode: ExecutionMode = Field(default=ExecutionMode.SHIFT_BASED, description="Coverage gating")
    lock_mode: LockMode | None = Field(default=None, description="Completion lock mode (None = default)")
    unlock_before_minutes: int | None = Field(default=None, ge=0, description="Unlock lead window")
    grace_minutes: int | None = Field(default=None, ge=0, description="Late-completion grace period")
    allow_early_completion: bool = Field(default=False, description="Allow completion before unlock")
    early_requires_reason: bool = Field(default=False, description="Early completion needs a reason")
    early_requires_photo: bool = Field(default=False, description="Early completion needs a photo")
    created: datetime | None = Field(default=None, description="Creation timestamp")
    updated: datetime | None = Field(default=None, description="Last update timestamp")

    @model_validator(mode="before")
    @classmethod
    def _coerce_loose_recurrence(cls, data: Any) -> Any:
        """Accept store rows that encode the rule as a string tag plus ad hoc fields."""
        if not isinstance(data, dict):
            return data
        raw = data.get("recurrence")
        if isinstance(raw, BaseModel | dict) or (raw is None and "recurrence_type" not in data):
            return data

        from opscore.core.recurrence_parser import parse_recurrence  # noqa: PLC0415

        return {**data, "recurrence": parse_recurrence(data)}

    @field_validator("start_at", "created", "updated")
    @classmethod
    def _ensure_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_assignment(self) -> "TaskDefinition":
        if self.assigned_employee_id and self.assigned_role:
            msg = f"Task {self.id} cannot be assigned to both an employee and a role"
            raise ValueError(msg)
        return self

    @property
    def is_recurring(self) -> bool:
        return not isinstance(self.recurrence, NoRecurrence)

    @property
    def is_archived(self) -> bool:
        return self.status == TemplateStatus.ARCHIVED

    @property
    def is_global(self) -> bool:
        return self.location_id is None

    def deadline_delta(self) -> timedelta | None:
        """Offset from an occurrence's start to its deadline, if the task has one."""
        if self.deadline_offset_minutes is not None:
            return timedelta(minutes=self.deadline_offset_minutes)
        if self.duration_minutes:
            return timedelta(minutes=self.duration_minutes)
        return None
