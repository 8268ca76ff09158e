from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import delete
from sqlmodel import Session, select

from taskpilot.db.models import PasswordResetToken, RevokedToken, utc_now


class RevokedTokenRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def is_revoked(self, jti: str) -> bool:
        return self.session.get(RevokedToken, jti) is not None

    def revoke(self, jti: str, *, expires_at: datetime) -> None:
        if self.is_revoked(jti):
            return
        self.session.add(RevokedToken(jti=jti, expires_at=expires_at))
        self.session.commit()

    def purge_expired(self, *, now: datetime | None = None) -> int:
        cutoff = now or datetime.now(UTC)
        result = self.session.exec(  # type: ignore[call-overload]
            delete(RevokedToken).where(RevokedToken.expires_at < cutoff)  # type: ignore[arg-type]
        )
        self.session.commit()
        return int(result.rowcount or 0)


class PasswordResetTokenRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, email: str) -> PasswordResetToken | None:
        return self.session.exec(
            select(PasswordResetToken).where(PasswordResetToken.email == email)
        ).first()

    def replace(self, email: str, token_hash: str) -> PasswordResetToken:
        existing = self.get(email)
        if existing is None:
            existing = PasswordResetToken(email=email, token_hash=token_hash)
        else:
            existing.token_hash = token_hash
            existing.created_at = utc_now()
        self.session.add(existing)
        self.session.commit()
        self.session.refresh(existing)
        return existing

    def delete(self, email: str) -> None:
        self.session.exec(  # type: ignore[call-overload]
            delete(PasswordResetToken).where(PasswordResetToken.email == email)  # type: ignore[arg-type]
        )
        self.session.commit()
