from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol


class LLMRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolArgumentsError(ValueError):
    """Raised when a tool call's argument buffer is not a JSON object."""


@dataclass(frozen=True, slots=True)
class LLMToolCall:
    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        raw = self.arguments.strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(f"Malformed arguments for tool '{self.name}'.") from exc
        if not isinstance(parsed, dict):
            raise ToolArgumentsError(f"Arguments for tool '{self.name}' must be an object.")
        return parsed


@dataclass(frozen=True, slots=True)
class LLMMessage:
    role: LLMRole
    content: str | None = None
    tool_calls: tuple[LLMToolCall, ...] = ()
    tool_call_id: str | None = None


@dataclass(frozen=True, slots=True)
class ToolCallDelta:
    """One fragment of a streamed tool call; fragments share an ``index``."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True, slots=True)
class LLMStreamChunk:
    content: str | None = None
    tool_call_deltas: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None


@dataclass(frozen=True, slots=True)
class LLMRequest:
    messages: list[LLMMessage]
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: str | None = None
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


@dataclass(frozen=True, slots=True)
class LLMResponse:
    provider: str
    model: str | None
    text: str
    tool_calls: list[LLMToolCall] = field(default_factory=list)
    finish_reason: str | None = None


# Async generator of chunks; ``aclose()`` releases the underlying response early.
ChunkStream = AsyncGenerator[LLMStreamChunk, None]


class CompletionProvider(Protocol):
    """Chat-completion backend used by the assistant.

    ``open_stream`` may raise before any chunk is produced; iterating the returned
    stream may raise mid-way. A stream is finite and cannot be restarted, and a
    caller that stops iterating early must close it.
    """

    provider_name: str

    async def complete(self, request: LLMRequest) -> LLMResponse: ...

    async def open_stream(self, request: LLMRequest) -> ChunkStream: ...
