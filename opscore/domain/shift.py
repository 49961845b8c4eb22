"""Shift roster domain models."""

from datetime import date, time
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from opscore.core.config import constants


class ApprovalStatus(StrEnum):
    """Approval state of a shift assignment."""

    PENDING = "pending"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ShiftAssignment(BaseModel):
    """A worker placed on a shift."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = Field(default=None, description="Assignment ID")
    staff_id: str = Field(..., min_length=1, description="Employee ID of the assigned worker")
    approval_status: str = Field(default=ApprovalStatus.PENDING, description="Approval state")

    @field_validator("approval_status")
    @classmethod
    def _normalize_status(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_approved(self) -> bool:
        return self.approval_status in constants.APPROVED_ASSIGNMENT_STATES


class Shift(BaseModel):
    """Rostered shift at one location on one day.

    Role and location are optional here so malformed roster rows can still be
    loaded; the coverage service skips and counts them.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Shift ID")
    location_id: str | None = Field(default=None, description="Location the shift is at")
    shift_date: date = Field(..., description="Business day of the shift")
    start_time: time | None = Field(default=None, description="Local start time")
    end_time: time | None = Field(default=None, description="Local end time")
    role: str | None = Field(default=None, description="Role name the shift is for")
    is_published: bool = Field(default=True, description="Whether the roster has been published")
    assignments: tuple[ShiftAssignment, ...] = Field(
        default=(),
        validation_alias=AliasChoices("assignments", "shift_assignments"),
        description="Workers placed on the shift",
    )

    @field_validator("assignments", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return () if value is None else value

    @property
    def is_malformed(self) -> bool:
        return not (self.role and self.role.strip()) or not self.location_id

    @property
    def approved_assignments(self) -> list[ShiftAssignment]:
        return [a for a in self.assignments if a.is_approved]
