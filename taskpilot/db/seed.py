from __future__ import annotations

from sqlmodel import Session

from taskpilot.core.config import Settings, get_settings
from taskpilot.core.logging import get_logger
from taskpilot.db.enums import RoleName
from taskpilot.db.models import Category
from taskpilot.db.repositories import CategoryRepository, UserRepository
from taskpilot.security import hash_password

logger = get_logger("taskpilot.db.seed")

DEFAULT_CATEGORIES: tuple[dict[str, str], ...] = (
    {"name": "Work", "description": "Tasks related to your job", "color": "#3B82F6"},
    {"name": "Personal", "description": "Personal errands and goals", "color": "#10B981"},
    {"name": "Shopping", "description": "Things to buy", "color": "#F59E0B"},
    {"name": "Health", "description": "Exercise, appointments and wellbeing", "color": "#EF4444"},
)


def seed_roles(session: Session) -> None:
    users = UserRepository(session)
    for role_name in RoleName:
        users.ensure_role(role_name)
    session.commit()


def seed_categories(session: Session) -> None:
    categories = CategoryRepository(session)
    for definition in DEFAULT_CATEGORIES:
        if categories.get_by_name(definition["name"]) is None:
            categories.create(Category(**definition))


def seed_admin(session: Session, settings: Settings) -> None:
    if settings.admin_email is None or settings.admin_password is None:
        return
    users = UserRepository(session)
    admin = users.get_by_email(settings.admin_email)
    if admin is None:
        admin = users.register(
            name=settings.admin_name,
            email=settings.admin_email,
            password_hash=hash_password(settings.admin_password),
            roles=(RoleName.USER, RoleName.ADMIN),
        )
        logger.info("seed.admin_created", user_id=admin.id)
        return
    if users.assign_role(admin, RoleName.ADMIN):
        logger.info("seed.admin_role_restored", user_id=admin.id)


def seed_initial_data(session: Session, *, settings: Settings | None = None) -> None:
    active_settings = settings or get_settings()
    seed_roles(session)
    seed_categories(session)
    seed_admin(session, active_settings)
