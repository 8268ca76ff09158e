from __future__ import annotations

from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from taskpilot.api.errors import ApiException, error_response_docs
from taskpilot.api.schemas import CategoryRead, DataResponse, MessageResponse
from taskpilot.core.auth import AdminAuth, CurrentAuth
from taskpilot.core.logging import get_logger
from taskpilot.db.models import Category
from taskpilot.db.repositories import CategoryRepository
from taskpilot.db.session import get_session

router = APIRouter(prefix="/categories", tags=["categories"])
logger = get_logger("taskpilot.api.categories")

DbSession = Annotated[Session, Depends(get_session)]
CategoryList = DataResponse[list[CategoryRead]]
CategoryEnvelope = DataResponse[CategoryRead]


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"name": "Work", "description": "Job related", "color": "#3B82F6"}
        }
    )


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def validate_non_empty_payload(self) -> CategoryUpdate:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided.")
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be null.")
        return self


def _get_category_or_404(session: Session, category_id: int) -> Category:
    category = CategoryRepository(session).get(category_id)
    if category is None:
        raise ApiException(
            status.HTTP_404_NOT_FOUND,
            "CATEGORY_NOT_FOUND",
            f"Category {category_id} does not exist.",
        )
    return category


def _ensure_name_available(session: Session, name: str, *, category_id: int | None = None) -> None:
    existing = CategoryRepository(session).get_by_name(name)
    if existing is not None and existing.id != category_id:
        raise ApiException(
            status.HTTP_409_CONFLICT,
            "CATEGORY_NAME_CONFLICT",
            f"Category name already exists: {name}",
        )


def _read(category: Category, tasks_count: int | None = None) -> CategoryRead:
    return CategoryRead.model_validate(category).model_copy(update={"tasks_count": tasks_count})


@router.get(
    "",
    response_model=CategoryList,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401)),
)
def list_categories(auth: CurrentAuth, session: DbSession) -> CategoryList:
    repository = CategoryRepository(session)
    counts = repository.task_counts_for_owner(auth.user_id)
    return CategoryList(
        data=[_read(category, counts.get(category.id or 0, 0)) for category in repository.list()],
        message="Categories retrieved successfully.",
    )


@router.get(
    "/{category_id}",
    response_model=CategoryEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 404)),
)
def get_category(category_id: int, auth: CurrentAuth, session: DbSession) -> CategoryEnvelope:
    category = _get_category_or_404(session, category_id)
    counts = CategoryRepository(session).task_counts_for_owner(auth.user_id)
    return CategoryEnvelope(
        data=_read(category, counts.get(category_id, 0)),
        message="Category retrieved successfully.",
    )


@router.post(
    "",
    response_model=CategoryEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 409, 422)),
)
def create_category(
    payload: CategoryCreate,
    auth: AdminAuth,
    session: DbSession,
) -> CategoryEnvelope:
    _ensure_name_available(session, payload.name)
    try:
        category = CategoryRepository(session).create(Category(**payload.model_dump()))
    except IntegrityError as exc:
        session.rollback()
        raise ApiException(
            status.HTTP_409_CONFLICT,
            "CATEGORY_NAME_CONFLICT",
            f"Category name already exists: {payload.name}",
        ) from exc
    logger.info("category.created", category_id=category.id, admin_id=auth.user_id)
    return CategoryEnvelope(data=_read(category), message="Category created successfully.")


@router.put(
    "/{category_id}",
    response_model=CategoryEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404, 409, 422)),
)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    auth: AdminAuth,
    session: DbSession,
) -> CategoryEnvelope:
    category = _get_category_or_404(session, category_id)
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates:
        _ensure_name_available(session, updates["name"], category_id=category_id)
    for field_name, value in updates.items():
        setattr(category, field_name, value)
    CategoryRepository(session).save(category)
    logger.info("category.updated", category_id=category_id, admin_id=auth.user_id)
    return CategoryEnvelope(data=_read(category), message="Category updated successfully.")


@router.delete(
    "/{category_id}",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def delete_category(category_id: int, auth: AdminAuth, session: DbSession) -> MessageResponse:
    category = _get_category_or_404(session, category_id)
    CategoryRepository(session).delete(category)
    logger.info("category.deleted", category_id=category_id, admin_id=auth.user_id)
    return MessageResponse(message="Category deleted successfully.")
