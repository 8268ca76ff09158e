from taskpilot.assistant.orchestrator import (
    DONE_FRAME,
    GENERIC_FAILURE_MESSAGE,
    ChatOrchestrator,
    ChatTurn,
    TurnState,
    sse_frame,
)
from taskpilot.assistant.prompts import (
    CreatorInfo,
    build_system_prompt,
    detect_creator_question,
    format_tasks_for_prompt,
)
from taskpilot.assistant.tools import (
    TOOL_DEFINITIONS,
    TaskToolExecutor,
    ToolResult,
    fallback_reply,
)

__all__ = [
    "DONE_FRAME",
    "GENERIC_FAILURE_MESSAGE",
    "TOOL_DEFINITIONS",
    "ChatOrchestrator",
    "ChatTurn",
    "CreatorInfo",
    "TaskToolExecutor",
    "ToolResult",
    "TurnState",
    "build_system_prompt",
    "detect_creator_question",
    "fallback_reply",
    "format_tasks_for_prompt",
    "sse_frame",
]
