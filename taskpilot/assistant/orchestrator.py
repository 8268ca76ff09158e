"""Chat turn orchestration between the user, the completion provider and tasks.

A turn is split in three steps so the HTTP layer can pick the right error
surface: ``prepare`` does the database work, ``open`` starts the first
completion (failures there become JSON errors), and ``relay`` yields the SSE
frames (failures there become an in-band error frame followed by ``[DONE]``).
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import AbstractContextManager, aclosing
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any

from sqlmodel import Session

from taskpilot.assistant.prompts import CreatorInfo, build_system_prompt, detect_creator_question
from taskpilot.assistant.tools import (
    TOOL_DEFINITIONS,
    TaskToolExecutor,
    ToolResult,
    fallback_reply,
)
from taskpilot.core.config import Settings
from taskpilot.core.logging import get_logger
from taskpilot.db.models import Message
from taskpilot.db.repositories import ConversationRepository, MessageRepository, TaskRepository
from taskpilot.db.session import session_scope
from taskpilot.llm.contracts import (
    ChunkStream,
    CompletionProvider,
    LLMMessage,
    LLMRequest,
    LLMRole,
    LLMStreamChunk,
    LLMToolCall,
    ToolCallDelta,
)
from taskpilot.llm.tool_calls import ToolCallAccumulator

logger = get_logger("taskpilot.assistant")

DONE_FRAME = "data: [DONE]\n\n"
GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."
PROCESSING_STATUS_MESSAGE = "Processing actions..."

SessionFactory = Callable[[], AbstractContextManager[Session]]


class TurnState(StrEnum):
    AWAIT_MODEL = "await_model"
    TEXT_ONLY = "text_only"
    TOOL_REQUESTED = "tool_requested"
    EXECUTING = "executing"
    AWAIT_FOLLOWUP = "await_followup"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class ChatTurn:
    user_id: int
    conversation_id: int
    user_message: str
    history: list[LLMMessage]
    system_prompt: str
    today: date
    creator_info: CreatorInfo | None = None
    state: TurnState = TurnState.AWAIT_MODEL
    reply_parts: list[str] = field(default_factory=list)

    @property
    def reply(self) -> str:
        return "".join(self.reply_parts)


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _single_chunk(chunk: LLMStreamChunk) -> ChunkStream:
    yield chunk


class ChatOrchestrator:
    def __init__(
        self,
        provider: CompletionProvider,
        settings: Settings,
        *,
        session_factory: SessionFactory = session_scope,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self._session_factory = session_factory

    def creator_info(self, overrides: Mapping[str, Any] | None = None) -> CreatorInfo:
        """Creator details from settings; non-empty client-supplied fields take precedence."""
        provided = {key: value for key, value in (overrides or {}).items() if value}
        return CreatorInfo(
            name=provided.get("name", self.settings.creator_name),
            linkedin=provided.get("linkedin", self.settings.creator_linkedin),
            note=provided.get("note", self.settings.creator_note),
        )

    def prepare(
        self,
        session: Session,
        *,
        user_id: int,
        message: str,
        context: dict[str, Any] | None = None,
        today: date | None = None,
    ) -> ChatTurn:
        """Persist the user message and snapshot everything the first completion needs."""
        current_day = today or date.today()
        conversation = ConversationRepository(session).get_or_create(user_id)
        assert conversation.id is not None
        messages = MessageRepository(session)

        # History is read before the new message is stored so it is not sent twice.
        history = [
            LLMMessage(
                role=LLMRole.ASSISTANT if item.is_ai_response else LLMRole.USER,
                content=item.content,
            )
            for item in messages.recent(conversation.id, self.settings.ai_history_limit)
        ]
        messages.create(
            Message(conversation_id=conversation.id, content=message, is_ai_response=False)
        )

        requested_creator = (context or {}).get("creator_info")
        wants_creator = detect_creator_question(message) or requested_creator is not None
        creator_info = self.creator_info(requested_creator) if wants_creator else None
        tasks = TaskRepository(session).list_for_prompt(user_id)
        turn = ChatTurn(
            user_id=user_id,
            conversation_id=conversation.id,
            user_message=message,
            history=history,
            system_prompt=build_system_prompt(tasks, current_day, creator_info),
            today=current_day,
            creator_info=creator_info,
        )
        logger.info(
            "assistant.turn.prepared",
            user_id=user_id,
            conversation_id=conversation.id,
            history_size=len(history),
            task_count=len(tasks),
            creator_context=creator_info is not None,
        )
        return turn

    async def open(self, turn: ChatTurn) -> ChunkStream:
        """Start the first completion; provider errors propagate to the caller."""
        request = self._build_request(turn, turn.system_prompt, tool_choice="auto")
        return await self._start(request)

    async def relay(
        self,
        turn: ChatTurn,
        stream: ChunkStream,
    ) -> AsyncIterator[str]:
        try:
            accumulator = ToolCallAccumulator()
            async with aclosing(stream):
                async for chunk in stream:
                    accumulator.feed_all(chunk.tool_call_deltas)
                    if chunk.content:
                        turn.reply_parts.append(chunk.content)
                        yield sse_frame({"chunk": chunk.content})

            if accumulator:
                turn.state = TurnState.TOOL_REQUESTED
                calls = accumulator.finalize()
                logger.info(
                    "assistant.turn.tools_requested",
                    user_id=turn.user_id,
                    conversation_id=turn.conversation_id,
                    tools=[call.name for call in calls],
                )
                yield sse_frame({"type": "status", "message": PROCESSING_STATUS_MESSAGE})
                async for frame in self._run_tools(turn, calls):
                    yield frame
            else:
                turn.state = TurnState.TEXT_ONLY

            self._persist_reply(turn)
            turn.state = TurnState.DONE
            logger.info(
                "assistant.turn.completed",
                user_id=turn.user_id,
                conversation_id=turn.conversation_id,
                reply_length=len(turn.reply),
            )
        except Exception:
            logger.exception(
                "assistant.turn.failed",
                user_id=turn.user_id,
                conversation_id=turn.conversation_id,
                state=turn.state.value,
            )
            turn.state = TurnState.FAILED
            yield sse_frame({"error": GENERIC_FAILURE_MESSAGE})
        yield DONE_FRAME

    async def _run_tools(self, turn: ChatTurn, calls: list[LLMToolCall]) -> AsyncIterator[str]:
        turn.state = TurnState.EXECUTING
        first_pass_text = turn.reply or None
        with self._session_factory() as session:
            results = TaskToolExecutor(session, turn.user_id).execute_all(calls)
            tasks = TaskRepository(session).list_for_prompt(turn.user_id)
            system_prompt = build_system_prompt(tasks, turn.today, turn.creator_info)

        turn.state = TurnState.AWAIT_FOLLOWUP
        followup = self._build_request(
            turn,
            system_prompt,
            tool_choice="none",
            extra_messages=self._tool_exchange(first_pass_text, calls, results),
        )
        async with aclosing(await self._start(followup)) as stream:
            async for chunk in stream:
                if chunk.content:
                    turn.reply_parts.append(chunk.content)
                    yield sse_frame({"chunk": chunk.content})

        if not turn.reply.strip():
            fallback = fallback_reply(results)
            turn.reply_parts.append(fallback)
            yield sse_frame({"chunk": fallback})

    @staticmethod
    def _tool_exchange(
        first_pass_text: str | None,
        calls: Sequence[LLMToolCall],
        results: Sequence[ToolResult],
    ) -> list[LLMMessage]:
        exchange = [
            LLMMessage(role=LLMRole.ASSISTANT, content=first_pass_text, tool_calls=tuple(calls))
        ]
        for result in results:
            exchange.append(
                LLMMessage(
                    role=LLMRole.TOOL,
                    content=json.dumps(result.payload, ensure_ascii=False, default=str),
                    tool_call_id=result.tool_call_id,
                )
            )
        return exchange

    def _build_request(
        self,
        turn: ChatTurn,
        system_prompt: str,
        *,
        tool_choice: str,
        extra_messages: Sequence[LLMMessage] = (),
    ) -> LLMRequest:
        messages = [
            LLMMessage(role=LLMRole.SYSTEM, content=system_prompt),
            *turn.history,
            LLMMessage(role=LLMRole.USER, content=turn.user_message),
            *extra_messages,
        ]
        return LLMRequest(
            messages=messages,
            tools=TOOL_DEFINITIONS,
            tool_choice=tool_choice,
            model=self.settings.openai_model,
            max_tokens=self.settings.openai_max_tokens,
            temperature=self.settings.openai_temperature,
        )

    async def _start(self, request: LLMRequest) -> ChunkStream:
        if self.settings.ai_stream_enabled:
            return await self.provider.open_stream(request)

        response = await self.provider.complete(request)
        return _single_chunk(
            LLMStreamChunk(
                content=response.text or None,
                tool_call_deltas=tuple(
                    ToolCallDelta(index=index, id=call.id, name=call.name, arguments=call.arguments)
                    for index, call in enumerate(response.tool_calls)
                ),
                finish_reason=response.finish_reason,
            )
        )

    def _persist_reply(self, turn: ChatTurn) -> None:
        reply = turn.reply
        if not reply.strip():
            return
        with self._session_factory() as session:
            MessageRepository(session).create(
                Message(
                    conversation_id=turn.conversation_id,
                    content=reply,
                    is_ai_response=True,
                )
            )
            conversation = ConversationRepository(session).get_for_user(turn.user_id)
            if conversation is not None:
                ConversationRepository(session).touch(conversation)
