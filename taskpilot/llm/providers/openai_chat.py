from __future__ import annotations

from typing import Any

import openai
from openai import AsyncOpenAI

from taskpilot.llm.contracts import (
    ChunkStream,
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMRole,
    LLMStreamChunk,
    LLMToolCall,
    ToolCallDelta,
)
from taskpilot.llm.errors import LLMErrorCode, LLMProviderError

OPENAI_PROVIDER_NAME = "openai"


class OpenAIChatAdapter:
    """Completion provider backed by the OpenAI chat-completions API.

    Each adapter owns its SDK client, created on first use. Pass ``client`` to
    reuse or fake one.
    """

    provider_name = OPENAI_PROVIDER_NAME

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        default_model: str = "gpt-4o-mini",
        default_max_tokens: int | None = None,
        default_temperature: float | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client
        self._client_options: dict[str, Any] = {
            "api_key": api_key,
            "base_url": base_url,
            "timeout": timeout_s,
            "max_retries": 0,
        }
        self._default_model = default_model
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature

    async def complete(self, request: LLMRequest) -> LLMResponse:
        try:
            completion = await self._get_client().chat.completions.create(
                **self._build_params(request),
            )
        except openai.OpenAIError as exc:
            raise _map_openai_error(exc) from exc

        if not completion.choices:
            raise LLMProviderError(
                code=LLMErrorCode.PROVIDER_PROTOCOL_ERROR,
                provider=self.provider_name,
                message="Completion response contained no choices.",
                retryable=True,
            )
        choice = completion.choices[0]
        tool_calls = [
            LLMToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "",
            )
            for call in (choice.message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        return LLMResponse(
            provider=self.provider_name,
            model=completion.model,
            text=choice.message.content or "",
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )

    async def open_stream(self, request: LLMRequest) -> ChunkStream:
        try:
            stream = await self._get_client().chat.completions.create(
                **self._build_params(request),
                stream=True,
            )
        except openai.OpenAIError as exc:
            raise _map_openai_error(exc) from exc
        return _iterate_stream(stream)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(**self._client_options)
            except openai.OpenAIError as exc:
                # Raised when no API key is configured.
                raise LLMProviderError(
                    code=LLMErrorCode.AUTHENTICATION_FAILED,
                    provider=self.provider_name,
                    message=str(exc),
                    retryable=False,
                    cause=exc,
                ) from exc
        return self._client

    def _build_params(self, request: LLMRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": [_serialize_message(message) for message in request.messages],
        }
        max_tokens = request.max_tokens or self._default_max_tokens
        if max_tokens is not None:
            params["max_completion_tokens"] = max_tokens
        temperature = (
            request.temperature if request.temperature is not None else self._default_temperature
        )
        if temperature is not None:
            params["temperature"] = temperature
        if request.tools:
            params["tools"] = request.tools
            if request.tool_choice is not None:
                params["tool_choice"] = request.tool_choice
        return params


async def _iterate_stream(stream: Any) -> ChunkStream:
    """Translate SDK stream chunks; the HTTP response is closed however iteration ends."""
    try:
        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            deltas = tuple(
                ToolCallDelta(
                    index=call.index,
                    id=call.id,
                    name=call.function.name if call.function else None,
                    arguments=call.function.arguments if call.function else None,
                )
                for call in (delta.tool_calls or [])
            )
            yield LLMStreamChunk(
                content=delta.content,
                tool_call_deltas=deltas,
                finish_reason=choice.finish_reason,
            )
    except openai.OpenAIError as exc:
        raise _map_openai_error(exc) from exc
    finally:
        await stream.close()


def _serialize_message(message: LLMMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.role == LLMRole.ASSISTANT and message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in message.tool_calls
        ]
    if message.role == LLMRole.TOOL:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def _map_openai_error(exc: openai.OpenAIError) -> LLMProviderError:
    provider = OPENAI_PROVIDER_NAME
    message = str(exc)
    if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
        return LLMProviderError(
            code=LLMErrorCode.AUTHENTICATION_FAILED,
            provider=provider,
            message=message,
            retryable=False,
            cause=exc,
        )
    if isinstance(exc, openai.RateLimitError):
        return LLMProviderError(
            code=LLMErrorCode.RATE_LIMITED,
            provider=provider,
            message=message,
            retryable=True,
            cause=exc,
        )
    if isinstance(exc, openai.APIConnectionError | openai.InternalServerError):
        return LLMProviderError(
            code=LLMErrorCode.PROVIDER_UNAVAILABLE,
            provider=provider,
            message=message,
            retryable=True,
            cause=exc,
        )
    if isinstance(exc, openai.BadRequestError):
        code = (
            LLMErrorCode.CONTEXT_LIMIT_EXCEEDED
            if "context_length" in message or "maximum context" in message
            else LLMErrorCode.INVALID_REQUEST
        )
        return LLMProviderError(
            code=code,
            provider=provider,
            message=message,
            retryable=False,
            cause=exc,
        )
    if isinstance(exc, openai.APIResponseValidationError):
        return LLMProviderError(
            code=LLMErrorCode.PROVIDER_PROTOCOL_ERROR,
            provider=provider,
            message=message,
            retryable=True,
            cause=exc,
        )
    return LLMProviderError(
        code=LLMErrorCode.EXECUTION_FAILED,
        provider=provider,
        message=message,
        retryable=True,
        cause=exc,
    )
