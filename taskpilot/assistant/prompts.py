"""System prompt assembly for the task assistant."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from taskpilot.db.enums import TaskStatus
from taskpilot.db.models import Task

CREATOR_KEYWORDS: tuple[str, ...] = (
    "who created you",
    "who made you",
    "who built you",
    "who developed you",
    "who programmed you",
    "who is your creator",
    "who is your developer",
    "who is your maker",
    "who's your creator",
    "who's your developer",
    "your creator",
    "your developer",
    "your maker",
)

PROFILE_KEYWORDS: tuple[str, ...] = (
    "linkedin",
    "linked in",
    "profile",
    "connect with",
    "social media",
    "professional profile",
)

_STATUS_LABELS: dict[TaskStatus, tuple[str, str]] = {
    TaskStatus.COMPLETED: ("✓", "Completed"),
    TaskStatus.IN_PROGRESS: ("▶", "In Progress"),
    TaskStatus.TODO: ("○", "To-Do"),
    TaskStatus.ARCHIVED: ("▣", "Archived"),
}


@dataclass(frozen=True, slots=True)
class CreatorInfo:
    name: str
    linkedin: str
    note: str


def detect_creator_question(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in CREATOR_KEYWORDS + PROFILE_KEYWORDS)


def _format_task_line(task: Task, today: date) -> list[str]:
    status = task.status or TaskStatus.TODO
    icon, label = _STATUS_LABELS.get(status, _STATUS_LABELS[TaskStatus.TODO])
    priority = (task.priority.value if task.priority else "medium").upper()
    category = f" [{task.category.name}]" if task.category is not None else ""
    due = f" (Due: {task.due_date.isoformat()})" if task.due_date else ""
    overdue = ""
    if (
        task.due_date is not None
        and task.due_date < today
        and status not in {TaskStatus.COMPLETED, TaskStatus.ARCHIVED}
    ):
        overdue = " ⚠️ OVERDUE"

    lines = [f"{icon} {label} [{priority}]{category} {task.title}{due}{overdue}"]
    if task.previous_status is not None:
        lines.append(f"  Previous status: {task.previous_status.value}")
    if task.description:
        lines.append(f"  Description: {task.description}")
    return lines


def format_tasks_for_prompt(tasks: Sequence[Task], today: date) -> str:
    if not tasks:
        return "No tasks yet."

    active = [task for task in tasks if task.status != TaskStatus.ARCHIVED]
    archived = [task for task in tasks if task.status == TaskStatus.ARCHIVED]

    sections: list[str] = []
    if active:
        sections.append("Active:")
        for task in active:
            sections.extend(_format_task_line(task, today))
    if archived:
        if sections:
            sections.append("")
        sections.append("Archived:")
        for task in archived:
            sections.extend(_format_task_line(task, today))
    return "\n".join(sections)


def _creator_section(creator_info: CreatorInfo) -> str:
    link = f"[{creator_info.linkedin}]({creator_info.linkedin})"
    return (
        "\n\n**Special Information:**\n"
        f"{creator_info.note}\n"
        f"Creator Name: {creator_info.name}\n"
        f"LinkedIn Profile URL: {creator_info.linkedin}\n"
        "\n**Sharing the creator profile:**\n"
        "1. Share the profile link when the user asks about the creator, asks for the "
        "profile, or shows interest after you mention the creator.\n"
        f"2. Use this exact markdown format: {link}\n"
        "3. You already have this information. Never claim you cannot access it.\n"
    )


def build_system_prompt(
    tasks: Sequence[Task],
    today: date,
    creator_info: CreatorInfo | None = None,
) -> str:
    task_context = format_tasks_for_prompt(tasks, today)
    prompt = (
        "You are an intelligent task management assistant that can perform actions "
        "on behalf of the user.\n\n"
        "**Today's Date**\n"
        f"Today is {today.strftime('%A')}, {today.isoformat()} (YYYY-MM-DD).\n"
        "When the user mentions relative dates such as 'tomorrow', 'in 5 days', 'next week' "
        "or 'next Monday', calculate the exact date in YYYY-MM-DD format from today's date.\n\n"
        "**User's Current Tasks:**\n"
        f"{task_context}"
    )

    if creator_info is not None:
        prompt += _creator_section(creator_info)

    prompt += """

**Your capabilities:**
- CREATE new tasks when the user asks
- UPDATE existing tasks (title, description, priority, due date, status)
- DELETE tasks when the user requests it
- Analyze tasks and answer questions about task management

**Task Status Options:**
1. **todo**: not started yet (pending, not started, to-do)
2. **in_progress**: currently being worked on (doing, working on, started)
3. **completed**: finished (done, finished, complete)
4. **archived**: hidden from the active list (archive, hide, put away)

**Status Transition Rules:**
- Any status can change to any other status. There are NO restrictions.
- Archived tasks can be restored to any status.
- Never tell the user a status change is not allowed.

**Natural Language Guide (status for update_task):**
- 'mark as done', 'finish it', 'I finished this' -> status='completed'
- 'I'm working on it', 'start it', 'move to doing' -> status='in_progress'
- 'mark as todo', 'not started', 'reset it' -> status='todo'
- 'archive X', 'hide X', 'remove from list X' -> status='archived'
- 'unarchive X', 'restore X', 'bring back X' -> the task's previous status when known
- 'delete X' -> delete_task (permanent)

**Status History:**
Every task remembers the single status it held before its last change (shown as
"Previous status"). Use it to restore tasks or to answer what a task was before.

**Duplicate Titles:**
- Always pass the EXACT task title from the list above as task_title.
- If a tool result reports several tasks with the same title, do not guess. List the
  matches with their status, priority, category, due date and description, and ask the
  user which one they mean.
- When the user answers, call the tool again with task_status set to the current
  status of the chosen task.

**Language:**
Reply in the language of the user's request. When a greeting and a request use
different languages, the request's language wins.

**Always:**
- Use the provided functions for every task operation
- Confirm actions clearly, e.g. 'I've marked X as completed'
- Be concise and friendly"""
    return prompt
