from __future__ import annotations

from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from taskpilot.api.errors import ApiException, error_response_docs
from taskpilot.api.schemas import DataResponse, UserRead
from taskpilot.core.auth import AdminAuth
from taskpilot.core.logging import get_logger
from taskpilot.db.models import User
from taskpilot.db.repositories import UserRepository
from taskpilot.db.session import get_session

router = APIRouter(prefix="/admin", tags=["admin"])
logger = get_logger("taskpilot.api.admin")

DbSession = Annotated[Session, Depends(get_session)]
UserList = DataResponse[list[UserRead]]
UserEnvelope = DataResponse[UserRead]


def _read(users: UserRepository, user: User) -> UserRead:
    assert user.id is not None
    return UserRead.model_validate(user).model_copy(update={"roles": users.role_names(user.id)})


def _get_user_or_404(users: UserRepository, user_id: int) -> User:
    user = users.get(user_id)
    if user is None:
        raise ApiException(
            status.HTTP_404_NOT_FOUND,
            "USER_NOT_FOUND",
            f"User {user_id} does not exist.",
        )
    return user


@router.get(
    "/users",
    response_model=UserList,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403)),
)
def list_users(_: AdminAuth, session: DbSession) -> UserList:
    users = UserRepository(session)
    return UserList(
        data=[_read(users, user) for user in users.list()],
        message="Users retrieved successfully.",
    )


@router.post(
    "/users/{user_id}/ban",
    response_model=UserEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def ban_user(user_id: int, auth: AdminAuth, session: DbSession) -> UserEnvelope:
    users = UserRepository(session)
    user = _get_user_or_404(users, user_id)
    if user.id == auth.user_id:
        raise ApiException(
            status.HTTP_403_FORBIDDEN,
            "FORBIDDEN",
            "You cannot ban yourself.",
        )
    user.is_banned = True
    users.save(user)
    logger.info("admin.user_banned", target_user_id=user_id, admin_id=auth.user_id)
    return UserEnvelope(data=_read(users, user), message="User banned successfully.")


@router.post(
    "/users/{user_id}/unban",
    response_model=UserEnvelope,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 404)),
)
def unban_user(user_id: int, auth: AdminAuth, session: DbSession) -> UserEnvelope:
    users = UserRepository(session)
    user = _get_user_or_404(users, user_id)
    user.is_banned = False
    users.save(user)
    logger.info("admin.user_unbanned", target_user_id=user_id, admin_id=auth.user_id)
    return UserEnvelope(data=_read(users, user), message="User unbanned successfully.")
