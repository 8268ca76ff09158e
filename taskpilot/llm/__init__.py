from taskpilot.llm.contracts import (
    ChunkStream,
    CompletionProvider,
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMRole,
    LLMStreamChunk,
    LLMToolCall,
    ToolArgumentsError,
    ToolCallDelta,
)
from taskpilot.llm.errors import LLMErrorCode, LLMProviderError
from taskpilot.llm.factory import create_llm_client
from taskpilot.llm.tool_calls import ToolCallAccumulator

__all__ = [
    "ChunkStream",
    "CompletionProvider",
    "LLMErrorCode",
    "LLMMessage",
    "LLMProviderError",
    "LLMRequest",
    "LLMResponse",
    "LLMRole",
    "LLMStreamChunk",
    "LLMToolCall",
    "ToolArgumentsError",
    "ToolCallAccumulator",
    "ToolCallDelta",
    "create_llm_client",
]
