from __future__ import annotations

from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from taskpilot.db.enums import TaskPriority, TaskStatus

T = TypeVar("T")


class HealthzResponse(BaseModel):
    status: str
    service: str
    env: str


class ReadinessChecks(BaseModel):
    configuration: str
    database: str


class ReadyzResponse(BaseModel):
    status: str
    checks: ReadinessChecks


class MessageResponse(BaseModel):
    message: str


class DataResponse(BaseModel, Generic[T]):
    data: T
    message: str


class CategorySummary(BaseModel):
    id: int
    name: str
    color: str | None = None
    model_config = ConfigDict(from_attributes=True)


class CategoryRead(BaseModel):
    id: int
    name: str
    description: str | None
    color: str | None
    created_at: datetime
    updated_at: datetime
    tasks_count: int | None = None
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 2,
                "name": "Work",
                "description": "Tasks related to the job",
                "color": "#3B82F6",
                "created_at": "2026-02-06T17:00:00Z",
                "updated_at": "2026-02-06T17:00:00Z",
                "tasks_count": 4,
            }
        },
    )


class TaskRead(BaseModel):
    id: int
    user_id: int
    category_id: int | None
    title: str
    description: str | None
    priority: TaskPriority
    status: TaskStatus
    previous_status: TaskStatus | None
    due_date: date | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    category: CategorySummary | None = None
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 12,
                "user_id": 3,
                "category_id": 2,
                "title": "Buy milk",
                "description": None,
                "priority": "high",
                "status": "todo",
                "previous_status": None,
                "due_date": "2026-02-07",
                "notes": None,
                "created_at": "2026-02-06T17:00:00Z",
                "updated_at": "2026-02-06T17:00:00Z",
                "category": {"id": 2, "name": "Personal", "color": "#10B981"},
            }
        },
    )


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    is_banned: bool
    created_at: datetime
    updated_at: datetime
    roles: list[str] = []
    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in": 3600,
            }
        }
    )
