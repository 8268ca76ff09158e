from __future__ import annotations

from sqlalchemy import func
from sqlmodel import Session, select

from taskpilot.db.models import Category, Task, utc_now
from taskpilot.db.repositories.task_repository import TaskRepository


class CategoryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, category: Category) -> Category:
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def get(self, category_id: int) -> Category | None:
        return self.session.get(Category, category_id)

    def get_by_name(self, name: str) -> Category | None:
        return self.session.exec(select(Category).where(Category.name == name)).first()

    def list(self) -> list[Category]:
        statement = select(Category).order_by(Category.name.asc())  # type: ignore[attr-defined]
        return list(self.session.exec(statement).all())

    def task_counts_for_owner(self, user_id: int) -> dict[int, int]:
        statement = (
            select(Task.category_id, func.count(Task.id))  # type: ignore[arg-type]
            .where(Task.user_id == user_id)
            .where(Task.category_id.is_not(None))  # type: ignore[union-attr]
            .group_by(Task.category_id)
        )
        return {int(category_id): int(count) for category_id, count in self.session.exec(statement)}

    def save(self, category: Category) -> Category:
        category.updated_at = utc_now()
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category: Category) -> None:
        """Delete the category and detach it from every task referencing it."""
        try:
            TaskRepository(self.session).detach_category(category.id or 0)
            self.session.delete(category)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
