"""Error classification for per-item pipeline failures."""

from enum import Enum

from pydantic import BaseModel, ValidationError


class OpsCoreError(Exception):
    """Base class for errors raised by the engine."""


class InvalidPipelineInputError(OpsCoreError, ValueError):
    """Top-level pipeline input is structurally invalid (e.g. a None definitions list)."""


class ErrorCategory(Enum):
    """Categories of problems found while processing a single item."""

    MALFORMED_DEFINITION = "malformed_definition"
    UNKNOWN_RECURRENCE = "unknown_recurrence"
    MALFORMED_SHIFT = "malformed_shift"
    MALFORMED_COMPLETION = "malformed_completion"
    DUPLICATE_COMPLETION = "duplicate_completion"
    EXPANSION_FAILED = "expansion_failed"
    UNKNOWN = "unknown"


class ErrorCode:
    """Error codes for specific per-item conditions."""

    # Definition errors
    ERR_MALFORMED_DEFINITION = "ERR_MALFORMED_DEFINITION"
    ERR_UNKNOWN_RECURRENCE = "ERR_UNKNOWN_RECURRENCE"
    ERR_EXPANSION_FAILED = "ERR_EXPANSION_FAILED"

    # Roster errors
    ERR_MALFORMED_SHIFT = "ERR_MALFORMED_SHIFT"

    # Completion errors
    ERR_MALFORMED_COMPLETION = "ERR_MALFORMED_COMPLETION"
    ERR_DUPLICATE_COMPLETION = "ERR_DUPLICATE_COMPLETION"

    # Completion write checks
    ERR_TASK_LOCKED_UNTIL = "TASK_LOCKED_UNTIL"
    ERR_TASK_LOCKED_LATE = "TASK_LOCKED_LATE"
    ERR_TASK_ALREADY_COMPLETED = "TASK_ALREADY_COMPLETED"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class PipelineDiagnostic(BaseModel):
    """One skipped or suspicious item, reported alongside the debug counters."""

    category: ErrorCategory
    code: str
    message: str
    stage: str
    subject_id: str | None = None


_STAGE_CATEGORIES: dict[str, tuple[ErrorCategory, str]] = {
    "definitions": (ErrorCategory.MALFORMED_DEFINITION, ErrorCode.ERR_MALFORMED_DEFINITION),
    "expansion": (ErrorCategory.EXPANSION_FAILED, ErrorCode.ERR_EXPANSION_FAILED),
    "shifts": (ErrorCategory.MALFORMED_SHIFT, ErrorCode.ERR_MALFORMED_SHIFT),
    "coverage": (ErrorCategory.MALFORMED_SHIFT, ErrorCode.ERR_MALFORMED_SHIFT),
    "completions": (ErrorCategory.MALFORMED_COMPLETION, ErrorCode.ERR_MALFORMED_COMPLETION),
}


def _mentions_recurrence(exception: ValidationError) -> bool:
    """Return True if any validation error points at the recurrence field."""
    for error in exception.errors():
        if any(str(part).startswith("recurrence") for part in error.get("loc", ())):
            return True
    return "recurrence" in str(exception).lower()


def classify_pipeline_error(exception: Exception, *, stage: str) -> tuple[ErrorCategory, str]:
    """Classify an exception raised while processing one item of a pipeline stage.

    Args:
        exception: The exception raised for the item
        stage: Pipeline stage name ("definitions", "expansion", "shifts", "coverage", "completions")

    Returns:
        Tuple of (ErrorCategory, error code)
    """
    if stage == "definitions" and isinstance(exception, ValidationError) and _mentions_recurrence(exception):
        return ErrorCategory.UNKNOWN_RECURRENCE, ErrorCode.ERR_UNKNOWN_RECURRENCE

    if stage == "definitions" and isinstance(exception, ValueError) and "recurrence" in str(exception).lower():
        return ErrorCategory.UNKNOWN_RECURRENCE, ErrorCode.ERR_UNKNOWN_RECURRENCE

    if stage in _STAGE_CATEGORIES and isinstance(exception, (ValidationError, ValueError, KeyError, TypeError)):
        return _STAGE_CATEGORIES[stage]

    return ErrorCategory.UNKNOWN, ErrorCode.ERR_UNKNOWN


def build_diagnostic(exception: Exception, *, stage: str, subject_id: object = None) -> PipelineDiagnostic:
    """Build a diagnostic record for an item skipped at the given stage.

    Store rows may carry non-string ids; the subject is rendered as text.
    """
    category, code = classify_pipeline_error(exception, stage=stage)
    message = str(exception).splitlines()[0] if str(exception) else type(exception).__name__
    subject = str(subject_id) if subject_id is not None else None
    return PipelineDiagnostic(category=category, code=code, message=message, stage=stage, subject_id=subject)


def add_diagnostic(diagnostics: list[PipelineDiagnostic], diagnostic: PipelineDiagnostic) -> bool:
    """Append a diagnostic unless the same failure is already recorded.

    A failure is identified by stage, code and subject, so a definition that
    fails on every day of a range is reported once.

    Returns:
        True if the diagnostic was appended
    """
    identity = (diagnostic.stage, diagnostic.code, diagnostic.subject_id)
    if any((d.stage, d.code, d.subject_id) == identity for d in diagnostics):
        return False
    diagnostics.append(diagnostic)
    return True
