from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from taskpilot.assistant import ChatOrchestrator
from taskpilot.assistant.orchestrator import ChatTurn, TurnState
from taskpilot.core.config import Settings
from taskpilot.db.models import Message, Task
from taskpilot.db.repositories import UserRepository
from taskpilot.llm.contracts import LLMRole
from taskpilot.llm.errors import LLMErrorCode, LLMProviderError
from tests.shared import (
    ScriptedProvider,
    ScriptedStream,
    parse_sse_frames,
    text_stream,
    tool_call_stream,
)

TODAY = date(2026, 2, 6)


@pytest.fixture
def user_id(db_engine: Engine) -> int:
    with Session(db_engine) as session:
        user = UserRepository(session).register(
            name="Chat User",
            email="chat@example.com",
            password_hash="not-used",
        )
        assert user.id is not None
        return user.id


def _orchestrator(
    db_engine: Engine,
    provider: ScriptedProvider,
    **overrides: object,
) -> ChatOrchestrator:
    @contextmanager
    def _session_factory() -> Iterator[Session]:
        with Session(db_engine) as session:
            yield session

    settings = Settings(**({"ai_history_limit": 10} | overrides))
    return ChatOrchestrator(provider, settings, session_factory=_session_factory)


def _run_turn(
    db_engine: Engine,
    orchestrator: ChatOrchestrator,
    user_id: int,
    message: str,
    context: dict[str, object] | None = None,
) -> tuple[ChatTurn, list[object]]:
    with Session(db_engine) as session:
        turn = orchestrator.prepare(
            session,
            user_id=user_id,
            message=message,
            context=context,
            today=TODAY,
        )

    async def _consume() -> list[str]:
        stream = await orchestrator.open(turn)
        return [frame async for frame in orchestrator.relay(turn, stream)]

    frames = asyncio.run(_consume())
    return turn, parse_sse_frames("".join(frames))


def test_prepare_snapshots_history_before_storing_message(db_engine: Engine, user_id: int) -> None:
    provider = ScriptedProvider(text_stream("First answer"), text_stream("Second answer"))
    orchestrator = _orchestrator(db_engine, provider)

    _run_turn(db_engine, orchestrator, user_id, "First question")
    turn, _ = _run_turn(db_engine, orchestrator, user_id, "Second question")

    assert [(item.role, item.content) for item in turn.history] == [
        (LLMRole.USER, "First question"),
        (LLMRole.ASSISTANT, "First answer"),
    ]
    sent = provider.requests[1].messages
    assert sent[0].role == LLMRole.SYSTEM
    assert [message.content for message in sent[1:]] == [
        "First question",
        "First answer",
        "Second question",
    ]
    assert provider.requests[1].tool_choice == "auto"


def test_history_limit_bounds_previous_messages(db_engine: Engine, user_id: int) -> None:
    provider = ScriptedProvider(*(text_stream(f"Answer {index}") for index in range(3)))
    orchestrator = _orchestrator(db_engine, provider, ai_history_limit=2)

    for index in range(3):
        turn, _ = _run_turn(db_engine, orchestrator, user_id, f"Question {index}")

    assert [item.content for item in turn.history] == ["Question 1", "Answer 1"]


def test_text_reply_is_streamed_and_persisted(db_engine: Engine, user_id: int) -> None:
    orchestrator = _orchestrator(db_engine, ScriptedProvider(text_stream("Hello", " there")))

    turn, frames = _run_turn(db_engine, orchestrator, user_id, "Hi")

    assert frames == [{"chunk": "Hello"}, {"chunk": " there"}, "[DONE]"]
    assert turn.state == TurnState.DONE
    with Session(db_engine) as session:
        stored = session.exec(select(Message).order_by(Message.id)).all()  # type: ignore[arg-type]
        assert [(message.content, message.is_ai_response) for message in stored] == [
            ("Hi", False),
            ("Hello there", True),
        ]


def test_tool_round_trip_refreshes_prompt(db_engine: Engine, user_id: int) -> None:
    provider = ScriptedProvider(
        tool_call_stream(
            ("call_1", "create_task", {"title": "Buy milk", "due_date": "2026-02-07"}),
        ),
        text_stream("Added Buy milk for tomorrow."),
    )
    orchestrator = _orchestrator(db_engine, provider)

    turn, frames = _run_turn(db_engine, orchestrator, user_id, "Add buy milk for tomorrow")

    assert frames == [
        {"type": "status", "message": "Processing actions..."},
        {"chunk": "Added Buy milk for tomorrow."},
        "[DONE]",
    ]
    assert turn.state == TurnState.DONE
    followup = provider.requests[1]
    assert followup.tool_choice == "none"
    assert "Buy milk (Due: 2026-02-07)" in (followup.messages[0].content or "")
    assert [message.role for message in followup.messages[-2:]] == [LLMRole.ASSISTANT, LLMRole.TOOL]
    assert followup.messages[-1].tool_call_id == "call_1"
    with Session(db_engine) as session:
        assert [task.title for task in session.exec(select(Task)).all()] == ["Buy milk"]


def test_non_streaming_mode_uses_complete(db_engine: Engine, user_id: int) -> None:
    provider = ScriptedProvider(
        tool_call_stream(("call_1", "create_task", {"title": "Call mom"})),
        ScriptedStream(),
    )
    orchestrator = _orchestrator(db_engine, provider, ai_stream_enabled=False)

    turn, frames = _run_turn(db_engine, orchestrator, user_id, "Remind me to call mom")

    assert frames == [
        {"type": "status", "message": "Processing actions..."},
        {"chunk": '✅ Created task: "Call mom" [Priority: medium]'},
        "[DONE]",
    ]
    assert turn.reply == '✅ Created task: "Call mom" [Priority: medium]'


def test_followup_failure_ends_with_error_frame(db_engine: Engine, user_id: int) -> None:
    failure = LLMProviderError(
        code=LLMErrorCode.PROVIDER_UNAVAILABLE,
        provider="scripted",
        message="upstream down",
        retryable=True,
    )
    provider = ScriptedProvider(
        tool_call_stream(("call_1", "create_task", {"title": "Buy milk"})),
        failure,
    )
    orchestrator = _orchestrator(db_engine, provider)

    turn, frames = _run_turn(db_engine, orchestrator, user_id, "Add buy milk")

    assert frames[-2:] == [{"error": "Something went wrong. Please try again."}, "[DONE]"]
    assert turn.state == TurnState.FAILED
    with Session(db_engine) as session:
        assert [task.title for task in session.exec(select(Task)).all()] == ["Buy milk"]
        assert [message.is_ai_response for message in session.exec(select(Message)).all()] == [
            False
        ]


def test_mid_stream_failure_closes_the_provider_stream(db_engine: Engine, user_id: int) -> None:
    failure = LLMProviderError(
        code=LLMErrorCode.PROVIDER_UNAVAILABLE,
        provider="scripted",
        message="connection reset",
        retryable=True,
    )
    script = ScriptedStream(chunks=text_stream("Partial").chunks, fail_with=failure)
    orchestrator = _orchestrator(db_engine, ScriptedProvider(script))

    turn, frames = _run_turn(db_engine, orchestrator, user_id, "Hello")

    assert frames == [
        {"chunk": "Partial"},
        {"error": "Something went wrong. Please try again."},
        "[DONE]",
    ]
    assert turn.state == TurnState.FAILED
    assert script.closed is True


def test_abandoned_relay_closes_the_provider_stream(db_engine: Engine, user_id: int) -> None:
    script = text_stream("Hel", "lo", " there")
    orchestrator = _orchestrator(db_engine, ScriptedProvider(script))
    with Session(db_engine) as session:
        turn = orchestrator.prepare(session, user_id=user_id, message="Hello", today=TODAY)

    async def _read_first_frame() -> str:
        frames = orchestrator.relay(turn, await orchestrator.open(turn))
        first = await anext(frames)
        await frames.aclose()
        return first

    first = asyncio.run(_read_first_frame())

    assert parse_sse_frames(first) == [{"chunk": "Hel"}]
    assert script.closed is True
    with Session(db_engine) as session:
        assert [message.is_ai_response for message in session.exec(select(Message)).all()] == [
            False
        ]


def test_creator_question_adds_creator_section(db_engine: Engine, user_id: int) -> None:
    provider = ScriptedProvider(text_stream("A team built me."), text_stream("Sure."))
    orchestrator = _orchestrator(
        db_engine,
        provider,
        creator_name="Jane Doe",
        creator_linkedin="https://www.linkedin.com/in/jane-doe",
    )

    creator_turn, _ = _run_turn(db_engine, orchestrator, user_id, "Who created you?")
    plain_turn, _ = _run_turn(db_engine, orchestrator, user_id, "List my tasks")

    assert creator_turn.creator_info is not None
    assert "Creator Name: Jane Doe" in creator_turn.system_prompt
    assert plain_turn.creator_info is None
    assert "Creator Name" not in plain_turn.system_prompt


def test_client_context_fields_override_configured_creator(
    db_engine: Engine, user_id: int
) -> None:
    orchestrator = _orchestrator(
        db_engine,
        ScriptedProvider(text_stream("Hi!"), text_stream("Hello again.")),
        creator_linkedin="https://www.linkedin.com/in/jane-doe",
    )

    turn, _ = _run_turn(
        db_engine,
        orchestrator,
        user_id,
        "Hello",
        context={"creator_info": {"name": "Grace Hopper", "note": ""}},
    )
    defaults_turn, _ = _run_turn(
        db_engine, orchestrator, user_id, "Hello", context={"creator_info": {}}
    )

    assert turn.creator_info is not None
    assert turn.creator_info.name == "Grace Hopper"
    assert turn.creator_info.linkedin == "https://www.linkedin.com/in/jane-doe"
    assert "Creator Name: Grace Hopper" in turn.system_prompt
    assert defaults_turn.creator_info is not None
    assert defaults_turn.creator_info.name == "The TaskPilot Team"
