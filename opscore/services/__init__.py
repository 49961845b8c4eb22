from opscore.services import (
    completion_identity,
    coverage_service,
    pipeline_service,
    recurrence_expander,
    time_lock,
)


__all__ = [
    "completion_identity",
    "coverage_service",
    "pipeline_service",
    "recurrence_expander",
    "time_lock",
]
