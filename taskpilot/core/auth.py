from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request, status
from sqlmodel import Session

from taskpilot.api.errors import ApiException
from taskpilot.core.config import Settings, get_settings
from taskpilot.core.logging import bind_log_context, get_logger
from taskpilot.db.enums import RoleName
from taskpilot.db.models import User
from taskpilot.db.repositories import RevokedTokenRepository, UserRepository
from taskpilot.db.session import get_session
from taskpilot.security import AccessTokenClaims, TokenError, decode_access_token

logger = get_logger("taskpilot.auth")

_UNAUTHENTICATED_MESSAGE = "Unauthenticated."


def extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if authorization is None:
        return None
    prefix = "bearer "
    lowered = authorization.lower()
    if not lowered.startswith(prefix):
        return None
    token = authorization[len(prefix) :].strip()
    return token if token else None


def _unauthorized() -> ApiException:
    return ApiException(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", _UNAUTHENTICATED_MESSAGE)


@dataclass(frozen=True, slots=True)
class AuthContext:
    user: User
    roles: tuple[str, ...]
    claims: AccessTokenClaims

    @property
    def user_id(self) -> int:
        assert self.user.id is not None
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return RoleName.ADMIN.value in self.roles


def get_auth_context(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthContext:
    token = extract_bearer_token(request)
    if token is None:
        raise _unauthorized()
    try:
        claims = decode_access_token(token, settings=settings)
    except TokenError as exc:
        logger.info("auth.token_rejected", reason=str(exc))
        raise _unauthorized() from exc

    if RevokedTokenRepository(session).is_revoked(claims.jti):
        logger.info("auth.token_revoked", user_id=claims.user_id)
        raise _unauthorized()

    users = UserRepository(session)
    user = users.get(claims.user_id)
    if user is None:
        raise _unauthorized()
    if user.is_banned:
        raise ApiException(
            status.HTTP_403_FORBIDDEN,
            "ACCOUNT_BANNED",
            "Your account has been banned.",
        )

    bind_log_context(user_id=user.id)
    return AuthContext(
        user=user,
        roles=tuple(users.role_names(claims.user_id)),
        claims=claims,
    )


def require_admin(auth: Annotated[AuthContext, Depends(get_auth_context)]) -> AuthContext:
    if not auth.is_admin:
        raise ApiException(
            status.HTTP_403_FORBIDDEN,
            "FORBIDDEN",
            "User does not have the right roles.",
        )
    return auth


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]
AdminAuth = Annotated[AuthContext, Depends(require_admin)]
