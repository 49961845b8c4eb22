"""Task completion domain model."""

from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CompletionMode(StrEnum):
    """Surface a completion was recorded from."""

    KIOSK = "kiosk"
    MOBILE = "mobile"
    WEB = "web"
    UNKNOWN = "unknown"


class TaskCompletion(BaseModel):
    """Completion of one task definition on one occurrence date.

    Keyed by (task_id, occurrence_date), never by a virtual occurrence identity.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Unique completion ID from the store")
    task_id: str = Field(..., min_length=1, description="Base task definition ID")
    occurrence_date: date = Field(..., description="Business day the completion belongs to")
    completed_by: str | None = Field(
        default=None,
        validation_alias=AliasChoices("completed_by", "completed_by_employee_id"),
        description="Employee ID who completed the task",
    )
    completed_at: datetime = Field(..., description="Completion instant")
    completed_late: bool | None = Field(default=None, description="Lateness as recorded by the store")
    evidence_ref: str | None = Field(default=None, description="Opaque reference to photo/notes evidence")
    completion_mode: CompletionMode = Field(default=CompletionMode.UNKNOWN, description="Recording surface")

    @field_validator("completed_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("completion_mode", mode="before")
    @classmethod
    def _tolerate_unknown_mode(cls, value: object) -> object:
        if isinstance(value, str) and value not in {mode.value for mode in CompletionMode}:
            return CompletionMode.UNKNOWN
        return value
