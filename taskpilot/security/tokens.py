"""JWT issuing and verification for bearer authentication.

Tokens are HS256 JWTs signed with ``Settings.jwt_secret``. Every token carries a
``jti`` so it can be revoked on logout or refresh, and an ``iat`` which bounds
the refresh window independently from ``exp``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from jose import JWTError, jwt

from taskpilot.core.config import Settings


class TokenError(Exception):
    """Raised for any token that cannot be trusted."""


@dataclass(frozen=True, slots=True)
class IssuedToken:
    access_token: str
    jti: str
    expires_in: int
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class AccessTokenClaims:
    user_id: int
    jti: str
    issued_at: datetime
    expires_at: datetime
    roles: tuple[str, ...]


def issue_access_token(
    *,
    user_id: int,
    roles: Sequence[str],
    settings: Settings,
    now: datetime | None = None,
) -> IssuedToken:
    issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
    ttl = timedelta(minutes=settings.jwt_ttl_minutes)
    expires_at = issued_at + ttl
    jti = uuid4().hex
    claims = {
        "sub": str(user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": jti,
        "roles": list(roles),
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return IssuedToken(
        access_token=token,
        jti=jti,
        expires_in=int(ttl.total_seconds()),
        expires_at=expires_at,
    )


def decode_access_token(token: str, *, settings: Settings) -> AccessTokenClaims:
    return _decode(token, settings=settings, verify_exp=True)


def decode_for_refresh(
    token: str,
    *,
    settings: Settings,
    now: datetime | None = None,
) -> AccessTokenClaims:
    """Decode a possibly expired token that is still inside the refresh window."""
    claims = _decode(token, settings=settings, verify_exp=False)
    current = now or datetime.now(UTC)
    refresh_deadline = claims.issued_at + timedelta(minutes=settings.jwt_refresh_ttl_minutes)
    if current > refresh_deadline:
        raise TokenError("Token can no longer be refreshed.")
    return claims


def _decode(token: str, *, settings: Settings, verify_exp: bool) -> AccessTokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": verify_exp},
        )
    except JWTError as exc:
        raise TokenError("Invalid token.") from exc

    try:
        user_id = int(payload["sub"])
        jti = str(payload["jti"])
        issued_at = datetime.fromtimestamp(int(payload["iat"]), UTC)
        expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenError("Token is missing required claims.") from exc

    raw_roles = payload.get("roles") or []
    roles = tuple(str(role) for role in raw_roles) if isinstance(raw_roles, list) else ()
    return AccessTokenClaims(
        user_id=user_id,
        jti=jti,
        issued_at=issued_at,
        expires_at=expires_at,
        roles=roles,
    )
