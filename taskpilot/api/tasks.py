from __future__ import annotations

from datetime import date
from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlmodel import Session

from taskpilot.api.errors import ApiException, ValidationIssue, error_response_docs
from taskpilot.api.schemas import DataResponse, MessageResponse, TaskRead
from taskpilot.core.auth import CurrentAuth
from taskpilot.core.logging import bind_log_context, get_logger
from taskpilot.db.enums import TaskPriority, TaskStatus
from taskpilot.db.models import Task
from taskpilot.db.repositories import (
    CategoryRepository,
    SortOrder,
    TaskFilters,
    TaskRepository,
    TaskSortField,
)
from taskpilot.db.session import get_session
from taskpilot.orchestration import restore_from_archive, toggle_complete, transition_to

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = get_logger("taskpilot.api.tasks")

DbSession = Annotated[Session, Depends(get_session)]
TaskList = DataResponse[list[TaskRead]]
TaskEnvelope = DataResponse[TaskRead]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category_id: int | None = Field(default=None, gt=0)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    status: TaskStatus = Field(default=TaskStatus.TODO)
    due_date: date | None = None
    notes: str | None = None
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy milk",
                "priority": "high",
                "due_date": "2026-02-07",
                "category_id": 2,
            }
        }
    )


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category_id: int | None = Field(default=None, gt=0)
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    due_date: date | None = None
    notes: str | None = None
    model_config = ConfigDict(
        json_schema_extra={"example": {"status": "in_progress", "priority": "low"}}
    )

    @model_validator(mode="after")
    def validate_non_empty_payload(self) -> TaskUpdate:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided.")
        for required in ("title", "priority", "status"):
            if required in self.model_fields_set and getattr(self, required) is None:
                raise ValueError(f"{required} cannot be null.")
        return self


def _get_owned_task(session: Session, task_id: int, user_id: int) -> Task:
    task = TaskRepository(session).get(task_id)
    if task is None:
        raise ApiException(
            status.HTTP_404_NOT_FOUND,
            "TASK_NOT_FOUND",
            f"Task {task_id} does not exist.",
        )
    if task.user_id != user_id:
        logger.warning("task.access_denied", task_id=task_id, owner_id=task.user_id)
        raise ApiException(
            status.HTTP_403_FORBIDDEN,
            "FORBIDDEN",
            "You are not allowed to access this task.",
        )
    return task


def _ensure_category_exists(session: Session, category_id: int | None) -> None:
    if category_id is None:
        return
    if CategoryRepository(session).get(category_id) is None:
        raise ApiException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "VALIDATION_ERROR",
            "Request validation failed.",
            issues=[
                ValidationIssue(
                    field="body.category_id",
                    message="The selected category id is invalid.",
                )
            ],
        )


def _envelope(task: Task, message: str) -> TaskEnvelope:
    return TaskEnvelope(data=TaskRead.model_validate(task), message=message)


@router.get(
    "",
    response_model=TaskList,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 422)),
)
def list_tasks(
    auth: CurrentAuth,
    session: DbSession,
    category_id: Annotated[int | None, Query(gt=0)] = None,
    priority: TaskPriority | None = None,
    task_status: Annotated[TaskStatus | None, Query(alias="status")] = None,
    due_date: date | None = None,
    overdue: bool = False,
    sort_by: TaskSortField = "created_at",
    sort_order: SortOrder = "desc",
) -> TaskList:
    filters = TaskFilters(
        category_id=category_id,
        priority=priority,
        status=task_status,
        due_date=due_date,
        overdue=overdue,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    tasks = TaskRepository(session).list_for_owner(auth.user_id, filters)
    return TaskList(
        data=[TaskRead.model_validate(task) for task in tasks],
        message="Tasks retrieved successfully.",
    )


@router.get(
    "/archived",
    response_model=TaskList,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401)),
)
def list_archived_tasks(auth: CurrentAuth, session: DbSession) -> TaskList:
    filters = TaskFilters(archived_only=True, sort_by="updated_at", sort_order="desc")
    tasks = TaskRepository(session).list_for_owner(auth.user_id, filters)
    return TaskList(
        data=[TaskRead.model_validate(task) for task in tasks],
        message="Archived tasks retrieved successfully.",
    )


@router.post(
    "",
    response_model=TaskEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 422)),
)
def create_task(payload: TaskCreate, auth: CurrentAuth, session: DbSession) -> TaskEnvelope:
    _ensure_category_exists(session, payload.category_id)
    repository = TaskRepository(session)
    task = repository.create(Task(user_id=auth.user_id, **payload.model_dump()))
    assert task.id is not None
    bind_log_context(task_id=task.id)
    logger.info("task.created", task_id=task.id, status=task.status.value)
    created = repository.get(task.id)
    assert created is not None
    return _envelope(created, "Task created successfully.")


@router.get(
    "/{task_id}",
    response_model=TaskEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def get_task(task_id: int, auth: CurrentAuth, session: DbSession) -> TaskEnvelope:
    task = _get_owned_task(session, task_id, auth.user_id)
    return _envelope(task, "Task retrieved successfully.")


@router.put(
    "/{task_id}",
    response_model=TaskEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404, 422)),
)
def update_task(
    task_id: int,
    payload: TaskUpdate,
    auth: CurrentAuth,
    session: DbSession,
) -> TaskEnvelope:
    task = _get_owned_task(session, task_id, auth.user_id)
    bind_log_context(task_id=task_id)
    updates = payload.model_dump(exclude_unset=True)
    if "category_id" in updates:
        _ensure_category_exists(session, updates["category_id"])

    new_status = updates.pop("status", None)
    for field_name, value in updates.items():
        setattr(task, field_name, value)
    if new_status is not None:
        transition_to(task, new_status)

    repository = TaskRepository(session)
    repository.save(task)
    logger.info("task.updated", task_id=task_id, fields=sorted(payload.model_fields_set))
    refreshed = repository.get(task.id)
    assert refreshed is not None
    return _envelope(refreshed, "Task updated successfully.")


@router.delete(
    "/{task_id}",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def delete_task(task_id: int, auth: CurrentAuth, session: DbSession) -> MessageResponse:
    task = _get_owned_task(session, task_id, auth.user_id)
    TaskRepository(session).delete(task)
    logger.info("task.deleted", task_id=task_id)
    return MessageResponse(message="Task deleted successfully.")


@router.post(
    "/{task_id}/complete",
    response_model=TaskEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def toggle_task_complete(task_id: int, auth: CurrentAuth, session: DbSession) -> TaskEnvelope:
    task = _get_owned_task(session, task_id, auth.user_id)
    toggle_complete(task)
    TaskRepository(session).save(task)
    completed = task.status == TaskStatus.COMPLETED
    logger.info("task.completion_toggled", task_id=task_id, completed=completed)
    message = "Task marked as completed." if completed else "Task marked as incomplete."
    return _envelope(task, message)


@router.post(
    "/{task_id}/archive",
    response_model=TaskEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(400, 401, 403, 404)),
)
def archive_task(task_id: int, auth: CurrentAuth, session: DbSession) -> TaskEnvelope:
    task = _get_owned_task(session, task_id, auth.user_id)
    if task.status == TaskStatus.ARCHIVED:
        raise ApiException(
            status.HTTP_400_BAD_REQUEST,
            "TASK_ALREADY_ARCHIVED",
            "Task is already archived.",
        )
    transition_to(task, TaskStatus.ARCHIVED)
    TaskRepository(session).save(task)
    logger.info("task.archived", task_id=task_id)
    return _envelope(task, "Task archived successfully.")


@router.post(
    "/{task_id}/unarchive",
    response_model=TaskEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(400, 401, 403, 404)),
)
def unarchive_task(task_id: int, auth: CurrentAuth, session: DbSession) -> TaskEnvelope:
    task = _get_owned_task(session, task_id, auth.user_id)
    if task.status != TaskStatus.ARCHIVED:
        raise ApiException(
            status.HTTP_400_BAD_REQUEST,
            "TASK_NOT_ARCHIVED",
            "Task is not archived.",
        )
    restore_from_archive(task)
    TaskRepository(session).save(task)
    logger.info("task.unarchived", task_id=task_id, status=task.status.value)
    return _envelope(task, "Task unarchived successfully.")
