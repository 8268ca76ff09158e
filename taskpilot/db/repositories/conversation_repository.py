from __future__ import annotations

from sqlalchemy import delete
from sqlmodel import Session, select

from taskpilot.db.models import Conversation, Message, utc_now


class ConversationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_for_user(self, user_id: int) -> Conversation | None:
        return self.session.exec(
            select(Conversation).where(Conversation.user_id == user_id)
        ).first()

    def get_or_create(self, user_id: int) -> Conversation:
        conversation = self.get_for_user(user_id)
        if conversation is not None:
            return conversation
        conversation = Conversation(user_id=user_id)
        self.session.add(conversation)
        self.session.commit()
        self.session.refresh(conversation)
        return conversation

    def touch(self, conversation: Conversation) -> None:
        conversation.updated_at = utc_now()
        self.session.add(conversation)
        self.session.commit()

    def reset(self, user_id: int) -> Conversation:
        """Hard-delete the user's conversation with its messages and start a fresh one."""
        existing = self.get_for_user(user_id)
        try:
            if existing is not None:
                self.session.exec(  # type: ignore[call-overload]
                    delete(Message).where(Message.conversation_id == existing.id)  # type: ignore[arg-type]
                )
                self.session.delete(existing)
                self.session.flush()
            fresh = Conversation(user_id=user_id)
            self.session.add(fresh)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(fresh)
        return fresh
