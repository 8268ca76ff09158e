from __future__ import annotations

from sqlmodel import Session, select

from taskpilot.db.models import Message


class MessageRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, message: Message) -> Message:
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message

    def list_by_conversation(self, conversation_id: int) -> list[Message]:
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())  # type: ignore[attr-defined,union-attr]
        )
        return list(self.session.exec(statement).all())

    def recent(self, conversation_id: int, limit: int) -> list[Message]:
        """Return the last ``limit`` messages in chronological order."""
        if limit <= 0:
            return []
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(
                Message.created_at.desc(),  # type: ignore[attr-defined]
                Message.id.desc(),  # type: ignore[union-attr]
            )
            .limit(limit)
        )
        rows = list(self.session.exec(statement).all())
        rows.reverse()
        return rows
