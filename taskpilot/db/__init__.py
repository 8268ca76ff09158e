"""Database layer modules and public helpers."""

from taskpilot.db.enums import RoleName, TaskPriority, TaskStatus
from taskpilot.db.models import (
    Category,
    Conversation,
    Message,
    PasswordResetToken,
    RevokedToken,
    Role,
    Task,
    User,
    UserRole,
)
from taskpilot.db.session import get_session, session_scope

__all__ = [
    "Category",
    "Conversation",
    "Message",
    "PasswordResetToken",
    "RevokedToken",
    "Role",
    "RoleName",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "User",
    "UserRole",
    "get_session",
    "session_scope",
]
