"""Query-side options shared by every consuming surface."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ViewMode(StrEnum):
    """How uncovered occurrences are treated."""

    EXECUTION = "execution"  # Only what somebody rostered today can act on
    PLANNING = "planning"  # Everything, with coverage gaps flagged


class PipelineFilters(BaseModel):
    """Scope filters applied after expansion."""

    model_config = ConfigDict(frozen=True)

    location_id: str | None = Field(default=None, description="Keep this location plus company-wide tasks")
    employee_id: str | None = Field(default=None, description="Keep tasks this employee can act on")
    employee_roles: tuple[str, ...] = Field(
        default=(), description="Roles of `employee_id`; role-assigned tasks matching them are kept"
    )
    role: str | None = Field(default=None, description="Keep tasks assigned to this role")


class PipelineOptions(BaseModel):
    """Expansion options."""

    model_config = ConfigDict(frozen=True)

    include_completed: bool = Field(default=True, description="Keep occurrences that already have a completion")
    include_virtual: bool = Field(default=True, description="Keep computed (non-materialized) occurrences")
