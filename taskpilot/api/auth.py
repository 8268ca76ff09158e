from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any, cast
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    model_validator,
)
from sqlmodel import Session

from taskpilot.api.dependencies import MailSenderDep
from taskpilot.api.errors import ApiException, error_response_docs
from taskpilot.api.schemas import DataResponse, MessageResponse, TokenResponse, UserRead
from taskpilot.core.auth import CurrentAuth, extract_bearer_token
from taskpilot.core.config import Settings, get_settings
from taskpilot.core.logging import bind_log_context, get_logger
from taskpilot.db.models import User
from taskpilot.db.repositories import (
    ConversationRepository,
    EmailAlreadyRegisteredError,
    PasswordResetTokenRepository,
    RevokedTokenRepository,
    UserRepository,
)
from taskpilot.db.session import get_session
from taskpilot.notifications import MailDeliveryError, build_password_reset_message
from taskpilot.security import (
    TokenError,
    decode_for_refresh,
    hash_password,
    issue_access_token,
    verify_password,
)
from taskpilot.security.passwords import PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger("taskpilot.api.auth")

DbSession = Annotated[Session, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists for that email, a password reset link has been sent."
)

PasswordField = Annotated[
    str,
    Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH),
]

EMAIL_MAX_LENGTH = 255


def _strip_email(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


def _normalize_email(value: str) -> str:
    if len(value) > EMAIL_MAX_LENGTH:
        raise ValueError(
            f"The email field must not be greater than {EMAIL_MAX_LENGTH} characters."
        )
    return value.lower()


# Accounts are keyed by the lowercased address.
EmailField = Annotated[
    EmailStr,
    BeforeValidator(_strip_email),
    AfterValidator(_normalize_email),
]


class _ConfirmedPassword(BaseModel):
    password: PasswordField
    password_confirmation: str

    @model_validator(mode="after")
    def validate_confirmation(self) -> _ConfirmedPassword:
        if self.password != self.password_confirmation:
            raise ValueError("The password field confirmation does not match.")
        return self


class RegisterRequest(_ConfirmedPassword):
    name: str = Field(min_length=1, max_length=255)
    email: EmailField
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Ada Lovelace",
                "email": "ada@example.com",
                "password": "analytical-engine",
                "password_confirmation": "analytical-engine",
            }
        }
    )


class LoginRequest(BaseModel):
    email: EmailField
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailField


class ResetPasswordRequest(_ConfirmedPassword):
    email: EmailField
    token: str = Field(min_length=1)


class ChangePasswordRequest(_ConfirmedPassword):
    current_password: str = Field(min_length=1)


def _token_response(session: Session, user: User, settings: Settings) -> TokenResponse:
    assert user.id is not None
    issued = issue_access_token(
        user_id=user.id,
        roles=UserRepository(session).role_names(user.id),
        settings=settings,
    )
    return TokenResponse(access_token=issued.access_token, expires_in=issued.expires_in)


def _ensure_not_banned(user: User) -> None:
    if user.is_banned:
        raise ApiException(
            status.HTTP_403_FORBIDDEN,
            "ACCOUNT_BANNED",
            "Your account has been banned.",
        )


def _invalid_reset_token() -> ApiException:
    return ApiException(
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        "INVALID_RESET_TOKEN",
        "This password reset token is invalid.",
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for values stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@router.post(
    "/register",
    response_model=TokenResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(409, 422)),
)
def register(payload: RegisterRequest, session: DbSession, settings: SettingsDep) -> TokenResponse:
    try:
        user = UserRepository(session).register(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password),
        )
    except EmailAlreadyRegisteredError as exc:
        raise ApiException(
            status.HTTP_409_CONFLICT,
            "EMAIL_ALREADY_REGISTERED",
            "The email has already been taken.",
        ) from exc
    bind_log_context(user_id=user.id)
    logger.info("auth.registered", user_id=user.id, ttl_minutes=settings.jwt_ttl_minutes)
    return _token_response(session, user, settings)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 422)),
)
def login(payload: LoginRequest, session: DbSession, settings: SettingsDep) -> TokenResponse:
    user = UserRepository(session).get_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning("auth.login_failed", email=payload.email)
        raise ApiException(
            status.HTTP_401_UNAUTHORIZED,
            "INVALID_CREDENTIALS",
            "The provided credentials are incorrect.",
        )
    _ensure_not_banned(user)
    assert user.id is not None
    ConversationRepository(session).get_or_create(user.id)
    bind_log_context(user_id=user.id)
    logger.info("auth.logged_in", user_id=user.id, ttl_minutes=settings.jwt_ttl_minutes)
    return _token_response(session, user, settings)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403)),
)
def refresh(request: Request, session: DbSession, settings: SettingsDep) -> TokenResponse:
    token = extract_bearer_token(request)
    if token is None:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Unauthenticated.")
    try:
        claims = decode_for_refresh(token, settings=settings)
    except TokenError as exc:
        logger.warning("auth.refresh_failed", reason=str(exc))
        raise ApiException(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", str(exc)) from exc

    revoked = RevokedTokenRepository(session)
    if revoked.is_revoked(claims.jti):
        raise ApiException(
            status.HTTP_401_UNAUTHORIZED,
            "UNAUTHORIZED",
            "The token has been blacklisted.",
        )
    user = UserRepository(session).get(claims.user_id)
    if user is None:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Unauthenticated.")
    _ensure_not_banned(user)

    # A refreshed token cannot be refreshed again.
    refresh_until = claims.issued_at + timedelta(minutes=settings.jwt_refresh_ttl_minutes)
    revoked.revoke(claims.jti, expires_at=max(claims.expires_at, refresh_until))
    logger.info("auth.refreshed", user_id=user.id)
    return _token_response(session, user, settings)


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401)),
)
def logout(auth: CurrentAuth, session: DbSession, settings: SettingsDep) -> MessageResponse:
    refresh_until = auth.claims.issued_at + timedelta(minutes=settings.jwt_refresh_ttl_minutes)
    RevokedTokenRepository(session).revoke(
        auth.claims.jti,
        expires_at=max(auth.claims.expires_at, refresh_until),
    )
    logger.info("auth.logged_out", user_id=auth.user_id)
    return MessageResponse(message="Successfully logged out.")


@router.get(
    "/me",
    response_model=DataResponse[UserRead],
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403)),
)
def me(auth: CurrentAuth) -> DataResponse[UserRead]:
    profile = UserRead.model_validate(auth.user).model_copy(update={"roles": list(auth.roles)})
    return DataResponse[UserRead](data=profile, message="User profile retrieved successfully.")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(422)),
)
async def forgot_password(
    payload: ForgotPasswordRequest,
    session: DbSession,
    settings: SettingsDep,
    mailer: MailSenderDep,
) -> MessageResponse:
    user = UserRepository(session).get_by_email(payload.email)
    if user is None:
        logger.info("auth.password_reset_unknown_email")
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    token = secrets.token_urlsafe(32)
    PasswordResetTokenRepository(session).replace(user.email, hash_password(token))
    query = urlencode({"token": token, "email": user.email})
    reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password?{query}"
    message = build_password_reset_message(
        email=user.email,
        name=user.name,
        reset_url=reset_url,
        ttl_minutes=settings.password_reset_ttl_minutes,
    )
    try:
        await mailer.send(message)
    except MailDeliveryError:
        # The response stays generic so it does not reveal which emails exist.
        logger.exception("auth.password_reset_mail_failed", user_id=user.id)
    else:
        logger.info("auth.password_reset_requested", user_id=user.id)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(422)),
)
def reset_password(
    payload: ResetPasswordRequest,
    session: DbSession,
    settings: SettingsDep,
) -> MessageResponse:
    tokens = PasswordResetTokenRepository(session)
    record = tokens.get(payload.email)
    if record is None or not verify_password(payload.token, record.token_hash):
        raise _invalid_reset_token()
    expires_at = _as_utc(record.created_at) + timedelta(
        minutes=settings.password_reset_ttl_minutes
    )
    if datetime.now(UTC) > expires_at:
        tokens.delete(payload.email)
        raise _invalid_reset_token()

    users = UserRepository(session)
    user = users.get_by_email(payload.email)
    if user is None:
        tokens.delete(payload.email)
        raise _invalid_reset_token()
    user.password_hash = hash_password(payload.password)
    users.save(user)
    tokens.delete(payload.email)
    logger.info("auth.password_reset", user_id=user.id)
    return MessageResponse(message="Your password has been reset.")


@router.post(
    "/change-password",
    response_model=MessageResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 422)),
)
def change_password(
    payload: ChangePasswordRequest,
    auth: CurrentAuth,
    session: DbSession,
) -> MessageResponse:
    user = auth.user
    if not verify_password(payload.current_password, user.password_hash):
        raise ApiException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "INVALID_CURRENT_PASSWORD",
            "The current password is incorrect.",
        )
    user.password_hash = hash_password(payload.password)
    UserRepository(session).save(user)
    logger.info("auth.password_changed", user_id=auth.user_id)
    return MessageResponse(message="Password changed successfully.")
