# Relationship annotations must stay evaluable at class creation, so this module
# does not use postponed annotations.
from datetime import UTC, datetime
from datetime import date as date_type
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, Column, Date, Index, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, Relationship, SQLModel

from taskpilot.db.enums import TaskPriority, TaskStatus


def utc_now() -> datetime:
    return datetime.now(UTC)


def _enum_column(enum_cls: type[StrEnum], *, nullable: bool, index: bool = False) -> Column:
    # Stored as plain strings; values are parsed back into the enum on load.
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=32,
            validate_strings=True,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=nullable,
        index=index,
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    email: str = Field(sa_column=Column(String(length=255), nullable=False, unique=True, index=True))
    password_hash: str = Field(sa_column=Column(String(length=255), nullable=False))
    is_banned: bool = Field(
        default=False,
        sa_column=Column(Boolean(), nullable=False, default=False),
    )
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Role(SQLModel, table=True):
    __tablename__ = "roles"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(length=32), nullable=False, unique=True))


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles_pair"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    role_id: int = Field(foreign_key="roles.id", nullable=False, index=True)


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(length=120), nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    color: str | None = Field(default=None, sa_column=Column(String(length=32), nullable=True))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_status", "user_id", "status"),
        Index("ix_tasks_user_title", "user_id", "title"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    category_id: int | None = Field(
        default=None,
        foreign_key="categories.id",
        nullable=True,
        index=True,
        ondelete="SET NULL",
    )
    title: str = Field(sa_column=Column(String(length=255), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    priority: TaskPriority = Field(
        default=TaskPriority.MEDIUM,
        sa_column=_enum_column(TaskPriority, nullable=False),
    )
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        sa_column=_enum_column(TaskStatus, nullable=False, index=True),
    )
    previous_status: TaskStatus | None = Field(
        default=None,
        sa_column=_enum_column(TaskStatus, nullable=True),
    )
    due_date: date_type | None = Field(default=None, sa_column=Column(Date(), nullable=True))
    notes: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)

    category: Optional[Category] = Relationship()


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, unique=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Message(SQLModel, table=True):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_conversation_created", "conversation_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    conversation_id: int = Field(
        foreign_key="conversations.id",
        nullable=False,
        index=True,
        ondelete="CASCADE",
    )
    content: str = Field(sa_column=Column(Text(), nullable=False))
    is_ai_response: bool = Field(
        default=False,
        sa_column=Column(Boolean(), nullable=False, default=False),
    )
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class PasswordResetToken(SQLModel, table=True):
    __tablename__ = "password_reset_tokens"

    email: str = Field(sa_column=Column(String(length=255), primary_key=True))
    token_hash: str = Field(sa_column=Column(String(length=255), nullable=False))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class RevokedToken(SQLModel, table=True):
    __tablename__ = "revoked_tokens"

    jti: str = Field(sa_column=Column(String(length=64), primary_key=True))
    expires_at: datetime = Field(nullable=False, index=True)
