"""Task status state machine.

Defines the legal task statuses, the directed transition graph between them,
and the presentation metadata (action labels, descriptions) derived from it.
Everything here is a pure lookup over module-level constants.
"""

from datetime import datetime
from enum import Enum
from types import MappingProxyType


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    DISCONNECTED = "disconnected"


class InvalidTransitionError(ValueError):
    """Raised when a requested status change is not an edge of the state machine."""

    def __init__(self, from_status: TaskStatus, to_status: TaskStatus, valid_next: list[TaskStatus]):
        self.from_status = from_status
        self.to_status = to_status
        self.valid_next = valid_next
        allowed = ", ".join(s.value for s in valid_next) or "none"
        super().__init__(
            f"Invalid status transition: {from_status.value} -> {to_status.value}. "
            f"Valid transitions from {from_status.value}: {allowed}"
        )


STATUS_TRANSITIONS: MappingProxyType = MappingProxyType({
    TaskStatus.PENDING: (TaskStatus.RUNNING,),
    TaskStatus.RUNNING: (
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.PAUSED,
        TaskStatus.DISCONNECTED,
    ),
    TaskStatus.PAUSED: (TaskStatus.RUNNING,),
    TaskStatus.DISCONNECTED: (TaskStatus.RUNNING, TaskStatus.FAILED),
    TaskStatus.COMPLETED: (),
    TaskStatus.FAILED: (),
})

TERMINAL_STATUSES = frozenset(s for s, nxt in STATUS_TRANSITIONS.items() if not nxt)

_TRANSITION_LABELS = MappingProxyType({
    (TaskStatus.PENDING, TaskStatus.RUNNING): "Start",
    (TaskStatus.RUNNING, TaskStatus.COMPLETED): "Complete",
    (TaskStatus.RUNNING, TaskStatus.FAILED): "Fail",
    (TaskStatus.RUNNING, TaskStatus.PAUSED): "Pause",
    (TaskStatus.RUNNING, TaskStatus.DISCONNECTED): "Mark Disconnected",
    (TaskStatus.PAUSED, TaskStatus.RUNNING): "Resume",
    (TaskStatus.DISCONNECTED, TaskStatus.RUNNING): "Resume",
    (TaskStatus.DISCONNECTED, TaskStatus.FAILED): "Mark Failed",
})

_STATUS_DESCRIPTIONS = MappingProxyType({
    TaskStatus.PENDING: "Task is queued and waiting to start",
    TaskStatus.RUNNING: "Task is currently being executed",
    TaskStatus.COMPLETED: "Task finished successfully",
    TaskStatus.FAILED: "Task encountered an error and stopped",
    TaskStatus.PAUSED: "Task was paused by user",
    TaskStatus.DISCONNECTED: "Task lost connection to execution environment",
})


def is_valid_transition(from_status: TaskStatus | str, to_status: TaskStatus | str) -> bool:
    """Check whether `from_status -> to_status` is an edge of the state machine."""
    return TaskStatus(to_status) in STATUS_TRANSITIONS[TaskStatus(from_status)]


def get_valid_next_states(current: TaskStatus | str) -> list[TaskStatus]:
    """Statuses reachable in one step from `current`, in table order."""
    return list(STATUS_TRANSITIONS[TaskStatus(current)])


def validate_transition(from_status: TaskStatus | str, to_status: TaskStatus | str) -> None:
    """Raise InvalidTransitionError if the transition is not allowed."""
    from_status = TaskStatus(from_status)
    to_status = TaskStatus(to_status)
    if not is_valid_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status, get_valid_next_states(from_status))


def is_terminal_status(status: TaskStatus | str) -> bool:
    return TaskStatus(status) in TERMINAL_STATUSES


def get_status_description(status: TaskStatus | str) -> str:
    return _STATUS_DESCRIPTIONS[TaskStatus(status)]


def get_transition_label(from_status: TaskStatus | str, to_status: TaskStatus | str) -> str:
    """Short imperative label for a transition, falling back to the target status name."""
    to_status = TaskStatus(to_status)
    return _TRANSITION_LABELS.get((TaskStatus(from_status), to_status), to_status.value)


def get_valid_actions(current: TaskStatus | str) -> list[dict]:
    """Legal next statuses paired with their button labels."""
    return [
        {"status": nxt.value, "label": get_transition_label(current, nxt)}
        for nxt in get_valid_next_states(current)
    ]


def timestamp_updates(
    to_status: TaskStatus | str,
    started_at: datetime | None,
    completed_at: datetime | None,
    now: datetime | None = None,
) -> dict:
    """Timestamp fields to set when entering `to_status`.

    `started_at` is only set on the first entry into running, `completed_at`
    on entry into a terminal status. Fields that are already set are never
    overwritten or cleared.
    """
    to_status = TaskStatus(to_status)
    now = now or datetime.now()
    updates = {}
    if to_status == TaskStatus.RUNNING and started_at is None:
        updates["started_at"] = now
    if to_status in TERMINAL_STATUSES and completed_at is None:
        updates["completed_at"] = now
    return updates
