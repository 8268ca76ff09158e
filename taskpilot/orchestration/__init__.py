from taskpilot.orchestration.state_machine import (
    InvalidTaskTransitionError,
    restore_from_archive,
    toggle_complete,
    transition_to,
)

__all__ = [
    "InvalidTaskTransitionError",
    "restore_from_archive",
    "toggle_complete",
    "transition_to",
]
