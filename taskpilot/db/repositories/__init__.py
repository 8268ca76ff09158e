from taskpilot.db.repositories.category_repository import CategoryRepository
from taskpilot.db.repositories.conversation_repository import ConversationRepository
from taskpilot.db.repositories.message_repository import MessageRepository
from taskpilot.db.repositories.task_repository import (
    SortOrder,
    TaskFilters,
    TaskRepository,
    TaskSortField,
)
from taskpilot.db.repositories.token_repository import (
    PasswordResetTokenRepository,
    RevokedTokenRepository,
)
from taskpilot.db.repositories.user_repository import (
    EmailAlreadyRegisteredError,
    UserRepository,
)

__all__ = [
    "CategoryRepository",
    "ConversationRepository",
    "EmailAlreadyRegisteredError",
    "MessageRepository",
    "PasswordResetTokenRepository",
    "RevokedTokenRepository",
    "SortOrder",
    "TaskFilters",
    "TaskRepository",
    "TaskSortField",
    "UserRepository",
]
