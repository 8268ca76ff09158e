from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RoleName(StrEnum):
    USER = "user"
    ADMIN = "admin"


# Sort weight used when ordering by priority ("high" first in descending order).
TASK_PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
}


class InvalidEnumValueError(ValueError):
    def __init__(self, field: str, value: object, allowed: list[str]) -> None:
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid {field} value {value!r}; expected one of: {', '.join(allowed)}."
        )


def parse_task_status(value: object) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidEnumValueError("status", value, [item.value for item in TaskStatus]) from exc


def parse_task_priority(value: object) -> TaskPriority:
    if isinstance(value, TaskPriority):
        return value
    try:
        return TaskPriority(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidEnumValueError(
            "priority",
            value,
            [item.value for item in TaskPriority],
        ) from exc
