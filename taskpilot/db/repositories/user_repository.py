from __future__ import annotations

from sqlmodel import Session, select

from taskpilot.db.enums import RoleName
from taskpilot.db.models import Conversation, Role, User, UserRole, utc_now


class EmailAlreadyRegisteredError(ValueError):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"email already registered: {email}")


class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        normalized = email.strip().lower()
        return self.session.exec(select(User).where(User.email == normalized)).first()

    def list(self) -> list[User]:
        statement = select(User).order_by(User.id.asc())  # type: ignore[union-attr]
        return list(self.session.exec(statement).all())

    def register(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        roles: tuple[RoleName, ...] = (RoleName.USER,),
    ) -> User:
        """Create the user, its role assignments and its conversation in one commit."""
        normalized_email = email.strip().lower()
        if self.get_by_email(normalized_email) is not None:
            raise EmailAlreadyRegisteredError(normalized_email)

        user = User(name=name.strip(), email=normalized_email, password_hash=password_hash)
        try:
            self.session.add(user)
            self.session.flush()
            assert user.id is not None
            for role_name in roles:
                role = self.ensure_role(role_name)
                self.session.add(UserRole(user_id=user.id, role_id=role.id))  # type: ignore[arg-type]
            self.session.add(Conversation(user_id=user.id))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        return user

    def ensure_role(self, role_name: RoleName) -> Role:
        role = self.session.exec(select(Role).where(Role.name == role_name.value)).first()
        if role is None:
            role = Role(name=role_name.value)
            self.session.add(role)
            self.session.flush()
        return role

    def role_names(self, user_id: int) -> list[str]:
        statement = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)  # type: ignore[arg-type]
            .where(UserRole.user_id == user_id)
            .order_by(Role.name.asc())  # type: ignore[attr-defined]
        )
        return [str(name) for name in self.session.exec(statement).all()]

    def assign_role(self, user: User, role_name: RoleName) -> bool:
        """Assign a role if missing; returns True when a new assignment was made."""
        assert user.id is not None
        role = self.ensure_role(role_name)
        existing = self.session.exec(
            select(UserRole)
            .where(UserRole.user_id == user.id)
            .where(UserRole.role_id == role.id)
        ).first()
        if existing is not None:
            self.session.commit()
            return False
        self.session.add(UserRole(user_id=user.id, role_id=role.id))  # type: ignore[arg-type]
        self.session.commit()
        return True

    def save(self, user: User) -> User:
        user.updated_at = utc_now()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user
