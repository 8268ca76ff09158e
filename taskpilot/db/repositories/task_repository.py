from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

from sqlalchemy import case, update
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from taskpilot.db.enums import TASK_PRIORITY_RANK, TaskPriority, TaskStatus
from taskpilot.db.models import Task, utc_now

TaskSortField = Literal["created_at", "updated_at", "due_date", "priority", "title", "status"]
SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True, slots=True)
class TaskFilters:
    category_id: int | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    due_date: date | None = None
    overdue: bool = False
    archived_only: bool = False
    sort_by: TaskSortField = "created_at"
    sort_order: SortOrder = "desc"


_PRIORITY_ORDER = case(
    {priority.value: rank for priority, rank in TASK_PRIORITY_RANK.items()},
    value=Task.priority,
    else_=0,
)


class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, task: Task) -> Task:
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def save(self, task: Task) -> Task:
        task.updated_at = utc_now()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def delete(self, task: Task) -> None:
        self.session.delete(task)
        self.session.commit()

    def get(self, task_id: int) -> Task | None:
        statement = (
            select(Task)
            .options(selectinload(Task.category))  # type: ignore[arg-type]
            .where(Task.id == task_id)
        )
        return self.session.exec(statement).first()

    def list_for_owner(self, user_id: int, filters: TaskFilters | None = None) -> list[Task]:
        active_filters = filters or TaskFilters()

        statement = (
            select(Task)
            .options(selectinload(Task.category))  # type: ignore[arg-type]
            .where(Task.user_id == user_id)
        )
        if active_filters.archived_only:
            statement = statement.where(Task.status == TaskStatus.ARCHIVED)
        else:
            statement = statement.where(Task.status != TaskStatus.ARCHIVED)
        if active_filters.category_id is not None:
            statement = statement.where(Task.category_id == active_filters.category_id)
        if active_filters.priority is not None:
            statement = statement.where(Task.priority == active_filters.priority)
        if active_filters.status is not None and active_filters.status != TaskStatus.ARCHIVED:
            statement = statement.where(Task.status == active_filters.status)
        if active_filters.due_date is not None:
            statement = statement.where(Task.due_date == active_filters.due_date)
        if active_filters.overdue:
            statement = statement.where(Task.due_date < date.today()).where(  # type: ignore[operator]
                Task.status != TaskStatus.COMPLETED
            )

        sort_column = (
            _PRIORITY_ORDER
            if active_filters.sort_by == "priority"
            else getattr(Task, active_filters.sort_by)
        )
        ordering = sort_column.asc() if active_filters.sort_order == "asc" else sort_column.desc()
        statement = statement.order_by(ordering, Task.id.desc())  # type: ignore[union-attr]
        return list(self.session.exec(statement).all())

    def list_for_prompt(self, user_id: int) -> list[Task]:
        """All owner tasks ordered by due date, then highest priority first."""
        statement = (
            select(Task)
            .options(selectinload(Task.category))  # type: ignore[arg-type]
            .where(Task.user_id == user_id)
            .order_by(
                Task.due_date.is_(None),  # type: ignore[union-attr]
                Task.due_date.asc(),  # type: ignore[union-attr]
                _PRIORITY_ORDER.desc(),
                Task.id.asc(),  # type: ignore[union-attr]
            )
        )
        return list(self.session.exec(statement).all())

    def find_by_title(
        self,
        user_id: int,
        title: str,
        *,
        status: TaskStatus | None = None,
    ) -> list[Task]:
        """Exact, case-sensitive title lookup across every task of the owner."""
        statement = (
            select(Task)
            .options(selectinload(Task.category))  # type: ignore[arg-type]
            .where(Task.user_id == user_id)
            .where(Task.title == title)
        )
        if status is not None:
            statement = statement.where(Task.status == status)
        statement = statement.order_by(Task.id.asc())  # type: ignore[union-attr]
        # SQLite compares TEXT case-sensitively by default but other backends may not.
        return [task for task in self.session.exec(statement).all() if task.title == title]

    def detach_category(self, category_id: int) -> None:
        statement = (
            update(Task)
            .where(Task.category_id == category_id)  # type: ignore[arg-type]
            .values(category_id=None, updated_at=utc_now())
        )
        self.session.exec(statement)  # type: ignore[call-overload]
