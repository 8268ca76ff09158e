from __future__ import annotations

import logging
from typing import Protocol

from taskpilot.db.enums import TaskStatus
from taskpilot.db.models import utc_now

logger = logging.getLogger(__name__)

RESTORE_FALLBACK_STATUS = TaskStatus.TODO


class InvalidTaskTransitionError(ValueError):
    """Raised when a transition is requested with a value outside the status domain."""


class StatusHolder(Protocol):
    status: TaskStatus | None
    previous_status: TaskStatus | None


def transition_to(task: StatusHolder, new_status: TaskStatus) -> StatusHolder:
    """
    Move ``task`` to ``new_status`` while keeping the single-slot history.

    The current status is copied into ``previous_status`` only when it is set and
    differs from the target. A no-op transition leaves the history untouched.
    History holds one step: consecutive transitions drop the older state.
    Every status can reach every other one; there is no terminal status.

    Raises:
        InvalidTaskTransitionError: If ``new_status`` is not a ``TaskStatus``.
    """
    if not isinstance(new_status, TaskStatus):
        raise InvalidTaskTransitionError(f"Unknown task status {new_status!r}.")

    current_status = task.status
    if current_status is not None and current_status != new_status:
        task.previous_status = current_status
        logger.info(
            "Transitioning task status: %s -> %s",
            current_status.value,
            new_status.value,
        )
    task.status = new_status
    if hasattr(task, "updated_at"):
        task.updated_at = utc_now()  # type: ignore[attr-defined]
    return task


def restore_from_archive(task: StatusHolder) -> StatusHolder:
    """Return an archived task to the status it held before archiving, or ``todo``."""
    target_status = task.previous_status or RESTORE_FALLBACK_STATUS
    transition_to(task, target_status)
    task.previous_status = None
    return task


def toggle_complete(task: StatusHolder) -> StatusHolder:
    target_status = (
        TaskStatus.TODO if task.status == TaskStatus.COMPLETED else TaskStatus.COMPLETED
    )
    return transition_to(task, target_status)
