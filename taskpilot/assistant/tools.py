"""Function-calling tools the assistant can invoke on the caller's tasks."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlmodel import Session

from taskpilot.core.logging import get_logger
from taskpilot.db.enums import (
    InvalidEnumValueError,
    TaskPriority,
    TaskStatus,
    parse_task_priority,
    parse_task_status,
)
from taskpilot.db.models import Task
from taskpilot.db.repositories import CategoryRepository, TaskRepository
from taskpilot.llm.contracts import LLMToolCall, ToolArgumentsError
from taskpilot.orchestration import transition_to

logger = get_logger("taskpilot.assistant.tools")

DESCRIPTION_SNIPPET_LENGTH = 60
FALLBACK_EMPTY_REPLY = "Done! I've completed the requested actions."

_STATUS_ENUM = [status.value for status in TaskStatus]
_PRIORITY_ENUM = [priority.value for priority in TaskPriority]
_DUE_DATE_HINT = (
    "Due date in YYYY-MM-DD format. Calculate relative dates (tomorrow, next week, "
    "5 days from now) from today's date given in the system prompt."
)
_TASK_STATUS_HINT = (
    "Current status of the task. Only set this on a second attempt, after a previous call "
    "reported several tasks with the same title."
)

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "create_task",
            "description": "Create a new task for the user.",
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "The task title."},
                    "description": {
                        "type": "string",
                        "description": "Optional description of the task.",
                    },
                    "priority": {
                        "type": "string",
                        "enum": _PRIORITY_ENUM,
                        "description": "Task priority level.",
                    },
                    "due_date": {"type": "string", "description": _DUE_DATE_HINT},
                    "category_id": {
                        "type": "integer",
                        "description": "Category ID if the user specified a category.",
                    },
                    "status": {
                        "type": "string",
                        "enum": _STATUS_ENUM,
                        "description": "Initial status, defaults to todo.",
                    },
                },
                "required": ["title"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_task",
            "description": (
                "Update an existing task. Use the exact task title from the user's task list."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "task_title": {
                        "type": "string",
                        "description": "The EXACT title of the task to update.",
                    },
                    "task_status": {
                        "type": "string",
                        "enum": _STATUS_ENUM,
                        "description": _TASK_STATUS_HINT,
                    },
                    "title": {"type": "string", "description": "New title for the task."},
                    "description": {"type": "string", "description": "New description."},
                    "priority": {
                        "type": "string",
                        "enum": _PRIORITY_ENUM,
                        "description": "New priority.",
                    },
                    "due_date": {"type": "string", "description": _DUE_DATE_HINT},
                    "status": {
                        "type": "string",
                        "enum": _STATUS_ENUM,
                        "description": (
                            'New status: "todo" (not started), "in_progress" (being worked on), '
                            '"completed" (finished) or "archived" (hidden from the active list).'
                        ),
                    },
                },
                "required": ["task_title"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "delete_task",
            "description": (
                "Permanently delete a task. Use the exact task title from the user's task list."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "task_title": {
                        "type": "string",
                        "description": "The EXACT title of the task to delete.",
                    },
                    "task_status": {
                        "type": "string",
                        "enum": _STATUS_ENUM,
                        "description": _TASK_STATUS_HINT,
                    },
                },
                "required": ["task_title"],
            },
        },
    },
]

_STATUS_CHANGE_LABELS: dict[TaskStatus, str] = {
    TaskStatus.ARCHIVED: "archived",
    TaskStatus.COMPLETED: "marked as completed",
    TaskStatus.IN_PROGRESS: "status changed to in progress",
    TaskStatus.TODO: "status changed to to-do",
}


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class CreateTaskArgs(_ToolArgs):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: str | None = None
    due_date: str | None = None
    category_id: int | None = None
    status: str | None = None


class LookupArgs(_ToolArgs):
    task_title: str = Field(min_length=1)
    task_status: str | None = None


class UpdateTaskArgs(LookupArgs):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: str | None = None
    due_date: str | None = None
    status: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    tool_call_id: str
    payload: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.payload.get("success"))

    @property
    def message(self) -> str | None:
        value = self.payload.get("message")
        return str(value) if value else None


class ToolInputError(ValueError):
    """Raised for tool arguments that cannot be applied; the message is user-facing."""


def _parse_due_date(value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ToolInputError(f'❌ Invalid due date: "{value}" (expected YYYY-MM-DD)') from exc


def _parse_status(value: str) -> TaskStatus:
    try:
        return parse_task_status(value)
    except InvalidEnumValueError as exc:
        raise ToolInputError(f'❌ Invalid status value: "{value}"') from exc


def _parse_priority(value: str) -> TaskPriority:
    try:
        return parse_task_priority(value)
    except InvalidEnumValueError as exc:
        raise ToolInputError(f'❌ Invalid priority value: "{value}"') from exc


def summarize_task(task: Task) -> dict[str, Any]:
    description = task.description or ""
    if len(description) > DESCRIPTION_SNIPPET_LENGTH:
        description = description[:DESCRIPTION_SNIPPET_LENGTH].rstrip() + "..."
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status.value if task.status else None,
        "priority": task.priority.value if task.priority else None,
        "category": task.category.name if task.category is not None else None,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "description": description or None,
    }


def _format_match_line(summary: dict[str, Any]) -> str:
    parts = [f"status: {summary['status']}", f"priority: {summary['priority']}"]
    if summary["category"]:
        parts.append(f"category: {summary['category']}")
    if summary["due_date"]:
        parts.append(f"due: {summary['due_date']}")
    if summary["description"]:
        parts.append(f'description: "{summary["description"]}"')
    return f"- #{summary['id']} ({', '.join(parts)})"


class TaskToolExecutor:
    """Executes assistant tool calls against the tasks of one user.

    Each call runs in isolation: a failing call is rolled back and reported as a
    failure result while the remaining calls still run.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.tasks = TaskRepository(session)
        self.categories = CategoryRepository(session)

    def execute_all(self, calls: Sequence[LLMToolCall]) -> list[ToolResult]:
        return [self.execute(call) for call in calls]

    def execute(self, call: LLMToolCall) -> ToolResult:
        handlers = {
            "create_task": self._create_task,
            "update_task": self._update_task,
            "delete_task": self._delete_task,
        }
        handler = handlers.get(call.name)
        if handler is None:
            logger.warning("assistant.tool.unknown", tool_name=call.name, tool_call_id=call.id)
            return ToolResult(
                tool_call_id=call.id,
                payload={
                    "success": False,
                    "error": f"Unknown function: {call.name}",
                    "message": f"❌ Unknown function: {call.name}",
                },
            )

        action = call.name.removesuffix("_task")
        try:
            arguments = call.parse_arguments()
            payload = handler(arguments)
        except ToolArgumentsError:
            logger.warning("assistant.tool.malformed_arguments", tool_name=call.name)
            payload = {
                "success": False,
                "action": action,
                "error": "malformed_arguments",
                "message": f"❌ Could not read the arguments for {call.name}.",
            }
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
            payload = {
                "success": False,
                "action": action,
                "error": "invalid_arguments",
                "fields": fields,
                "message": f"❌ Invalid arguments for {call.name}: {', '.join(fields)}",
            }
        except ToolInputError as exc:
            self.session.rollback()
            payload = {
                "success": False,
                "action": action,
                "error": "invalid_arguments",
                "message": str(exc),
            }
        except Exception:
            self.session.rollback()
            logger.exception(
                "assistant.tool.failed",
                tool_name=call.name,
                tool_call_id=call.id,
                user_id=self.user_id,
            )
            payload = {
                "success": False,
                "action": action,
                "error": "execution_failed",
                "message": f"❌ Failed to {action} task.",
            }
        return ToolResult(tool_call_id=call.id, payload=payload)

    def _lookup(self, args: LookupArgs, action: str) -> tuple[Task | None, dict[str, Any] | None]:
        status_filter = _parse_status(args.task_status) if args.task_status else None
        matches = self.tasks.find_by_title(self.user_id, args.task_title, status=status_filter)
        if not matches:
            suffix = f" with status {status_filter.value}" if status_filter else ""
            return None, {
                "success": False,
                "action": action,
                "error": "not_found",
                "message": f'❌ Task not found: "{args.task_title}"{suffix}',
            }
        if len(matches) > 1:
            summaries = [summarize_task(task) for task in matches]
            lines = "\n".join(_format_match_line(summary) for summary in summaries)
            return None, {
                "success": False,
                "action": action,
                "error": "ambiguous",
                "matches": summaries,
                "message": (
                    f'⚠️ Found {len(matches)} tasks named "{args.task_title}". '
                    f"Which one do you mean?\n{lines}"
                ),
            }
        return matches[0], None

    def _create_task(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = CreateTaskArgs.model_validate(arguments)
        priority = _parse_priority(args.priority) if args.priority else TaskPriority.MEDIUM
        status = _parse_status(args.status) if args.status else TaskStatus.TODO
        due_date = _parse_due_date(args.due_date)
        if args.category_id is not None and self.categories.get(args.category_id) is None:
            raise ToolInputError(f"❌ Category not found: {args.category_id}")

        task = self.tasks.create(
            Task(
                user_id=self.user_id,
                title=args.title,
                description=args.description or None,
                priority=priority,
                status=status,
                due_date=due_date,
                category_id=args.category_id,
            )
        )
        message = f'✅ Created task: "{task.title}"'
        if task.due_date:
            message += f" (Due: {task.due_date.isoformat()})"
        message += f" [Priority: {task.priority.value}]"
        logger.info("assistant.tool.task_created", task_id=task.id, user_id=self.user_id)
        return {"success": True, "action": "create", "task_id": task.id, "message": message}

    def _update_task(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = UpdateTaskArgs.model_validate(arguments)
        task, failure = self._lookup(args, "update")
        if task is None:
            return failure or {}

        new_priority = _parse_priority(args.priority) if args.priority else None
        new_status = _parse_status(args.status) if args.status else None
        new_due_date = _parse_due_date(args.due_date) if args.due_date else None

        updated: list[str] = []
        if args.title is not None and args.title != task.title:
            task.title = args.title
            updated.append("title")
        if args.description is not None:
            task.description = args.description or None
            updated.append("description")
        if new_priority is not None:
            task.priority = new_priority
            updated.append("priority")
        if new_due_date is not None:
            task.due_date = new_due_date
            updated.append("due date")
        if new_status is not None:
            transition_to(task, new_status)
            updated.append(_STATUS_CHANGE_LABELS[new_status])

        task = self.tasks.save(task)
        message = f'✅ Updated task: "{args.task_title}"'
        if updated:
            message += f" ({', '.join(updated)})"
        logger.info(
            "assistant.tool.task_updated",
            task_id=task.id,
            user_id=self.user_id,
            fields=updated,
        )
        return {"success": True, "action": "update", "task_id": task.id, "message": message}

    def _delete_task(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = LookupArgs.model_validate(arguments)
        task, failure = self._lookup(args, "delete")
        if task is None:
            return failure or {}

        task_id = task.id
        title = task.title
        self.tasks.delete(task)
        logger.info("assistant.tool.task_deleted", task_id=task_id, user_id=self.user_id)
        return {
            "success": True,
            "action": "delete",
            "task_id": task_id,
            "message": f'✅ Deleted task: "{title}"',
        }


def fallback_reply(results: Sequence[ToolResult]) -> str:
    """Plain-text confirmation used when the follow-up completion returns no text."""
    messages: list[str] = []
    for result in results:
        if result.message:
            messages.append(result.message)
        elif result.success:
            action = str(result.payload.get("action") or "action")
            messages.append(f"✅ {action.capitalize()} completed successfully")
    if not messages:
        return FALLBACK_EMPTY_REPLY
    return "\n".join(messages)
