"""Task occurrence domain models (derived per request, never stored)."""

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from opscore.core.calendar import as_aware
from opscore.core.config import constants
from opscore.domain.completion import TaskCompletion
from opscore.domain.task import TaskDefinition


class MaterializedIdentity(BaseModel):
    """Occurrence backed by a stored row (one-off task or a template's own start day)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["materialized"] = "materialized"
    task_id: str

    @property
    def base_id(self) -> str:
        return self.task_id

    @property
    def key(self) -> str:
        return self.task_id

    @property
    def is_writable(self) -> bool:
        return True


class VirtualIdentity(BaseModel):
    """Computed occurrence of a recurring definition on one day."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["virtual"] = "virtual"
    definition_id: str
    occurrence_date: date

    @property
    def base_id(self) -> str:
        return self.definition_id

    @property
    def key(self) -> str:
        day = self.occurrence_date.strftime(constants.DAY_KEY_FORMAT)
        return f"{self.definition_id}{constants.VIRTUAL_ID_MARKER}{day}"

    @property
    def is_writable(self) -> bool:
        return False


OccurrenceIdentity = Annotated[MaterializedIdentity | VirtualIdentity, Field(discriminator="kind")]


class CoverageReason(StrEnum):
    """Why an occurrence is or is not covered."""

    COVERED = "covered"
    ALWAYS_ON = "always_on"
    NO_SHIFT = "no_shift"
    LOCATION_MISMATCH = "location_mismatch"
    ROLE_MISMATCH = "role_mismatch"
    NO_APPROVED_ASSIGNMENTS = "no_approved_assignments"
    EMPLOYEE_NOT_SCHEDULED = "employee_not_scheduled"


class CoverageResult(BaseModel):
    """Outcome of matching one occurrence against a day's roster."""

    model_config = ConfigDict(frozen=True)

    covered: bool
    matching_shift_ids: tuple[str, ...] = ()
    covered_by_employees: tuple[str, ...] = ()
    reason: CoverageReason
    shifts_checked: int = 0
    malformed_shifts: int = 0


class OccurrenceStatus(StrEnum):
    """Status bucket an occurrence is grouped into."""

    PENDING = "pending"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    NO_COVERAGE = "no_coverage"


class TaskOccurrence(BaseModel):
    """A single dated instance of a task definition.

    Runtime state (completion, coverage, overdue) is attached by later pipeline
    stages through model_copy; instances are never mutated.
    """

    model_config = ConfigDict(frozen=True)

    identity: OccurrenceIdentity
    definition: TaskDefinition
    occurrence_date: date
    start_at: datetime
    deadline_at: datetime | None = None
    completion: TaskCompletion | None = None
    is_overdue: bool = False
    coverage: CoverageResult | None = None
    no_coverage: bool = False

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def base_id(self) -> str:
        return self.identity.base_id

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.identity, VirtualIdentity)

    @property
    def title(self) -> str:
        return self.definition.title

    @property
    def location_id(self) -> str | None:
        return self.definition.location_id

    @property
    def assigned_employee_id(self) -> str | None:
        return self.definition.assigned_employee_id

    @property
    def assigned_role(self) -> str | None:
        return self.definition.assigned_role

    @property
    def is_completed(self) -> bool:
        return self.completion is not None

    @property
    def completed_by(self) -> str | None:
        return self.completion.completed_by if self.completion else None

    @property
    def completed_at(self) -> datetime | None:
        return self.completion.completed_at if self.completion else None

    @property
    def completed_late(self) -> bool:
        """Lateness as recorded by the store, else derived from the deadline."""
        if self.completion is None:
            return False
        if self.completion.completed_late is not None:
            return self.completion.completed_late
        return self.deadline_at is not None and self.completion.completed_at > self.deadline_at

    def overdue_at(self, now: datetime) -> bool:
        """Overdue iff uncompleted and `now` is past the deadline."""
        if self.completion is not None or self.deadline_at is None:
            return False
        return as_aware(now) > self.deadline_at

    @property
    def status(self) -> OccurrenceStatus:
        if self.is_completed:
            return OccurrenceStatus.COMPLETED
        if self.is_overdue:
            return OccurrenceStatus.OVERDUE
        if self.no_coverage:
            return OccurrenceStatus.NO_COVERAGE
        return OccurrenceStatus.PENDING

    def sort_key(self) -> tuple[datetime, str, str]:
        return (self.start_at, self.definition.id, self.key)
