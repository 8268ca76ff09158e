from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session

from taskpilot.api.dependencies import ProviderDep
from taskpilot.api.errors import error_response_docs
from taskpilot.assistant import ChatOrchestrator
from taskpilot.core.auth import CurrentAuth
from taskpilot.core.config import Settings, get_settings
from taskpilot.core.logging import bind_log_context, get_logger
from taskpilot.db.repositories import ConversationRepository, MessageRepository
from taskpilot.db.session import get_session

router = APIRouter(prefix="/ai", tags=["ai"])
logger = get_logger("taskpilot.api.ai")

DbSession = Annotated[Session, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

MAX_CHAT_MESSAGE_LENGTH = 1000
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class CreatorInfoContext(BaseModel):
    name: str | None = None
    linkedin: str | None = None
    note: str | None = None

    @field_validator("linkedin")
    @classmethod
    def validate_linkedin(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(("http://", "https://")):
            raise ValueError("The linkedin field must be a valid URL.")
        return value


class ChatContext(BaseModel):
    creator_info: CreatorInfoContext | None = None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_CHAT_MESSAGE_LENGTH)
    context: ChatContext | None = None
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"message": "Create a task called Buy milk, high priority, due tomorrow"}
        }
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty.")
        return value


class ChatMessageRead(BaseModel):
    id: int
    content: str
    is_ai_response: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ChatHistoryResponse(BaseModel):
    success: bool
    messages: list[ChatMessageRead]


class ConversationClearedResponse(BaseModel):
    success: bool
    message: str


@router.post(
    "/chat",
    response_class=StreamingResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403, 422, 500, 503)),
)
async def chat(
    payload: ChatRequest,
    auth: CurrentAuth,
    session: DbSession,
    provider: ProviderDep,
    settings: SettingsDep,
) -> StreamingResponse:
    orchestrator = ChatOrchestrator(provider, settings)
    turn = orchestrator.prepare(
        session,
        user_id=auth.user_id,
        message=payload.message,
        context=payload.context.model_dump(exclude_none=True) if payload.context else None,
    )
    bind_log_context(conversation_id=turn.conversation_id)
    # Provider errors raised here are still answered as JSON by the exception handlers.
    stream = await orchestrator.open(turn)
    return StreamingResponse(
        orchestrator.relay(turn, stream),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/messages",
    response_model=ChatHistoryResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403)),
)
def list_messages(auth: CurrentAuth, session: DbSession) -> ChatHistoryResponse:
    conversation = ConversationRepository(session).get_for_user(auth.user_id)
    if conversation is None or conversation.id is None:
        return ChatHistoryResponse(success=True, messages=[])
    messages = MessageRepository(session).list_by_conversation(conversation.id)
    return ChatHistoryResponse(
        success=True,
        messages=[ChatMessageRead.model_validate(message) for message in messages],
    )


@router.delete(
    "/conversations",
    response_model=ConversationClearedResponse,
    responses=cast(dict[int | str, dict[str, Any]], error_response_docs(401, 403)),
)
def clear_conversation(auth: CurrentAuth, session: DbSession) -> ConversationClearedResponse:
    conversation = ConversationRepository(session).reset(auth.user_id)
    logger.info("assistant.conversation_cleared", conversation_id=conversation.id)
    return ConversationClearedResponse(
        success=True,
        message="Conversation cleared successfully",
    )
