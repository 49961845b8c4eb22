"""Task time-lock policy.

Determines whether an occurrence can be completed at a given instant:
- lock_mode="anytime" (or an always-on task): completable at any time
- lock_mode="scheduled": completable from `unlock_before_minutes` before the start
  (default 30) until `grace_minutes` after the deadline, when a grace is configured
- Early completion may be allowed, optionally requiring a reason and/or photo

Pure: nothing here writes state; callers enforce the decision when accepting a
completion.
"""

import logging
from datetime import datetime, timedelta

from opscore.core.calendar import as_aware
from opscore.core.config import Settings, settings
from opscore.core.errors import ErrorCode
from opscore.domain.occurrence import TaskOccurrence
from opscore.domain.task import ExecutionMode, LockMode
from opscore.models.service_models import CompletionDecision, LockReason, TimeLockStatus


logger = logging.getLogger(__name__)


def _minutes_between(later: datetime, earlier: datetime) -> int:
    # Truncates toward zero
    return int((later - earlier).total_seconds() / 60)


def completion_lock_status(
    occurrence: TaskOccurrence,
    now: datetime,
    config: Settings = settings,
) -> TimeLockStatus:
    """Compute whether a completion action is currently permitted.

    Args:
        occurrence: The occurrence to check
        now: Current instant, as trusted by the caller
        config: Source of defaults for tasks that do not set lock fields

    Returns:
        TimeLockStatus
    """
    now = as_aware(now)
    definition = occurrence.definition

    if occurrence.is_completed:
        return TimeLockStatus(locked=True, reason=LockReason.ALREADY_COMPLETED)

    lock_mode = definition.lock_mode or LockMode(config.default_lock_mode)
    if lock_mode == LockMode.ANYTIME or definition.execution_mode == ExecutionMode.ALWAYS_ON:
        return TimeLockStatus(locked=False, reason=LockReason.ANYTIME)

    unlock_before = definition.unlock_before_minutes
    if unlock_before is None:
        unlock_before = config.default_unlock_before_minutes
    grace = definition.grace_minutes if definition.grace_minutes is not None else config.default_grace_minutes

    unlock_at = occurrence.start_at - timedelta(minutes=unlock_before)
    deadline = occurrence.deadline_at
    lock_at = deadline + timedelta(minutes=grace) if deadline is not None and grace is not None else None
    is_late = deadline is not None and now > deadline

    if now < unlock_at:
        minutes_until_unlock = _minutes_between(unlock_at, now)
        if not definition.allow_early_completion:
            return TimeLockStatus(
                locked=True,
                reason=LockReason.TOO_EARLY,
                unlock_at=unlock_at,
                lock_at=lock_at,
                minutes_until_unlock=minutes_until_unlock,
                is_early=True,
            )
        return TimeLockStatus(
            locked=False,
            reason=LockReason.NOT_LOCKED,
            unlock_at=unlock_at,
            lock_at=lock_at,
            minutes_until_unlock=minutes_until_unlock,
            is_early=True,
            allow_early_with_reason=True,
            requires_reason=definition.early_requires_reason,
            requires_photo=definition.early_requires_photo,
        )

    if lock_at is not None and now > lock_at:
        return TimeLockStatus(locked=True, reason=LockReason.TOO_LATE, lock_at=lock_at, is_late=True)

    # Within the window, or late but still inside the grace period
    return TimeLockStatus(locked=False, reason=LockReason.NOT_LOCKED, lock_at=lock_at, is_late=is_late)


_ERROR_CODES = {
    LockReason.TOO_EARLY: ErrorCode.ERR_TASK_LOCKED_UNTIL,
    LockReason.TOO_LATE: ErrorCode.ERR_TASK_LOCKED_LATE,
    LockReason.ALREADY_COMPLETED: ErrorCode.ERR_TASK_ALREADY_COMPLETED,
}


def validate_completion_time(
    occurrence: TaskOccurrence,
    now: datetime,
    *,
    manager_override: bool = False,
    config: Settings = settings,
) -> CompletionDecision:
    """Validate a completion attempt before it is written.

    A manager override bypasses the time window but never allows a second
    completion of the same occurrence.
    """
    status = completion_lock_status(occurrence, now, config)

    if not status.locked:
        return CompletionDecision(allowed=True)

    if manager_override and status.reason != LockReason.ALREADY_COMPLETED:
        logger.info("Manager override accepted for %s (%s)", occurrence.key, status.reason)
        return CompletionDecision(allowed=True)

    return CompletionDecision(allowed=False, error_code=_ERROR_CODES[status.reason], unlock_at=status.unlock_at)
