from __future__ import annotations

from datetime import date, timedelta

from sqlmodel import Session, select

from taskpilot.db.enums import TaskPriority, TaskStatus
from taskpilot.db.models import Message, Task
from taskpilot.llm.contracts import LLMRole
from taskpilot.llm.errors import LLMErrorCode, LLMProviderError
from tests.shared import (
    ApiTestContext,
    ScriptedProvider,
    ScriptedStream,
    parse_sse_frames,
    streamed_text,
    text_stream,
    tool_call_stream,
)


def _stored_messages(context: ApiTestContext) -> list[Message]:
    with Session(context.engine) as session:
        statement = select(Message).order_by(Message.id.asc())  # type: ignore[union-attr]
        return list(session.exec(statement).all())


def test_chat_creates_task_through_tool_call_and_streams_confirmation(
    api_context: ApiTestContext,
) -> None:
    headers = api_context.register()
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    api_context.provider = ScriptedProvider(
        tool_call_stream(
            (
                "call_1",
                "create_task",
                {"title": "Buy milk", "priority": "high", "due_date": tomorrow},
            )
        ),
        text_stream("Done! I created ", '"Buy milk" for tomorrow.'),
    )

    response = api_context.client.post(
        "/ai/chat",
        json={"message": "Create a task called Buy milk, high priority, due tomorrow"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    frames = parse_sse_frames(response.text)
    assert frames[-1] == "[DONE]"
    assert {"type": "status", "message": "Processing actions..."} in frames
    assert "Buy milk" in streamed_text(frames)

    tasks = api_context.client.get("/tasks", headers=headers).json()["data"]
    assert len(tasks) == 1
    assert tasks[0]["title"] == "Buy milk"
    assert tasks[0]["priority"] == TaskPriority.HIGH.value
    assert tasks[0]["due_date"] == tomorrow
    assert tasks[0]["status"] == TaskStatus.TODO.value

    followup = api_context.provider.requests[1]
    assert followup.tool_choice == "none"
    tool_messages = [message for message in followup.messages if message.role == LLMRole.TOOL]
    assert len(tool_messages) == 1
    assert tool_messages[0].tool_call_id == "call_1"
    assert "Buy milk" in (followup.messages[0].content or "")

    messages = _stored_messages(api_context)
    assert [message.is_ai_response for message in messages] == [False, True]
    assert messages[1].content == 'Done! I created "Buy milk" for tomorrow.'


def test_chat_text_only_reply_is_streamed_and_persisted(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(text_stream("Hello", " there!"))

    response = api_context.client.post("/ai/chat", json={"message": "Hi"}, headers=headers)

    assert response.status_code == 200
    frames = parse_sse_frames(response.text)
    assert frames == [{"chunk": "Hello"}, {"chunk": " there!"}, "[DONE]"]
    request = api_context.provider.requests[0]
    assert request.tool_choice == "auto"
    assert request.messages[0].role == LLMRole.SYSTEM
    assert request.messages[-1].content == "Hi"

    history = api_context.client.get("/ai/messages", headers=headers).json()
    assert history["success"] is True
    assert [item["content"] for item in history["messages"]] == ["Hi", "Hello there!"]
    assert [item["is_ai_response"] for item in history["messages"]] == [False, True]


def test_chat_sends_previous_messages_as_history(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(text_stream("First answer"), text_stream("Second"))

    api_context.client.post("/ai/chat", json={"message": "First question"}, headers=headers)
    api_context.client.post("/ai/chat", json={"message": "Second question"}, headers=headers)

    second_request = api_context.provider.requests[1]
    contents = [message.content for message in second_request.messages[1:]]
    assert contents == ["First question", "First answer", "Second question"]


def test_chat_mid_stream_failure_yields_generic_error_and_done(
    api_context: ApiTestContext,
) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(
        ScriptedStream(
            chunks=text_stream("Partial").chunks,
            fail_with=RuntimeError("upstream exploded: secret-internal-detail"),
        )
    )

    response = api_context.client.post("/ai/chat", json={"message": "Hi"}, headers=headers)

    assert response.status_code == 200
    assert "Something went wrong. Please try again." in response.text
    assert "secret-internal-detail" not in response.text
    frames = parse_sse_frames(response.text)
    assert frames[-1] == "[DONE]"
    assert {"error": "Something went wrong. Please try again."} in frames


def test_chat_provider_error_before_stream_returns_json_503(
    api_context: ApiTestContext,
) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(
        LLMProviderError(
            code=LLMErrorCode.PROVIDER_UNAVAILABLE,
            provider="scripted",
            message="connection refused by sk-abcdefghijklmnopqrstuvwx",
            retryable=True,
        )
    )

    response = api_context.client.post("/ai/chat", json={"message": "Hi"}, headers=headers)

    assert response.status_code == 503
    payload = response.json()
    assert payload["error"]["code"] == "AI_PROVIDER_ERROR"
    assert "sk-abcdefghijklmnopqrstuvwx" not in response.text


def test_chat_follow_up_without_text_uses_tool_messages(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(
        tool_call_stream(("call_1", "create_task", {"title": "Water plants"})),
        text_stream(),
    )

    response = api_context.client.post(
        "/ai/chat",
        json={"message": "Add water plants"},
        headers=headers,
    )

    text = streamed_text(parse_sse_frames(response.text))
    assert '✅ Created task: "Water plants"' in text


def test_chat_message_length_limits(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(text_stream("ok"))

    accepted = api_context.client.post("/ai/chat", json={"message": "a" * 1000}, headers=headers)
    rejected = api_context.client.post("/ai/chat", json={"message": "a" * 1001}, headers=headers)
    empty = api_context.client.post("/ai/chat", json={"message": ""}, headers=headers)

    assert accepted.status_code == 200
    assert rejected.status_code == 422
    assert rejected.json()["error"]["code"] == "VALIDATION_ERROR"
    assert empty.status_code == 422


def test_clear_conversation_removes_history(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    api_context.provider = ScriptedProvider(text_stream("Hello"))
    api_context.client.post("/ai/chat", json={"message": "Hi"}, headers=headers)

    response = api_context.client.delete("/ai/conversations", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Conversation cleared successfully"}
    history = api_context.client.get("/ai/messages", headers=headers).json()
    assert history == {"success": True, "messages": []}
    assert _stored_messages(api_context) == []


def test_ambiguous_delete_leaves_tasks_untouched(api_context: ApiTestContext) -> None:
    headers = api_context.register()
    for status in ("todo", "completed"):
        api_context.client.post(
            "/tasks",
            json={"title": "Report", "status": status},
            headers=headers,
        )
    api_context.provider = ScriptedProvider(
        tool_call_stream(("call_1", "delete_task", {"task_title": "Report"})),
        text_stream("Which one?"),
    )

    api_context.client.post("/ai/chat", json={"message": "Delete Report"}, headers=headers)

    with Session(api_context.engine) as session:
        assert len(session.exec(select(Task)).all()) == 2
    tool_message = next(
        message
        for message in api_context.provider.requests[1].messages
        if message.role == LLMRole.TOOL
    )
    assert '"error": "ambiguous"' in (tool_message.content or "")


def test_ai_endpoints_require_authentication(api_context: ApiTestContext) -> None:
    client = api_context.client

    responses = [
        client.post("/ai/chat", json={"message": "Hi"}),
        client.get("/ai/messages"),
        client.delete("/ai/conversations"),
    ]

    for response in responses:
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Unauthenticated."
