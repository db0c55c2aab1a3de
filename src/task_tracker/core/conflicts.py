"""Concurrent-task conflict detection.

A conflict is a candidate task that would run in the same environment and on
the same branch as a task that is already running or paused there. Detection
is advisory: the result carries a message, and the caller decides whether to
warn or block.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from task_tracker.core.environments import (
    EnvironmentConfig,
    RemoteEnvironment,
    WorktreeEnvironment,
    environment_key,
    is_same_branch,
    is_same_environment,
)
from task_tracker.core.transitions import TaskStatus

logger = logging.getLogger(__name__)

# Disconnected tasks do not hold their environment.
OCCUPYING_STATUSES = frozenset({TaskStatus.RUNNING, TaskStatus.PAUSED})


@dataclass
class TaskCandidate:
    environment_config: EnvironmentConfig
    branch_name: str | None = None


@dataclass
class ConflictResult:
    has_conflict: bool
    conflicting_tasks: list = field(default_factory=list)
    message: str | None = None


@dataclass
class ActiveEnvironment:
    environment_type: str
    environment_key: str
    branch_name: str | None
    task_count: int


def is_occupying(task) -> bool:
    return TaskStatus(task.status) in OCCUPYING_STATUSES


def detect_concurrent_tasks(candidate, existing_tasks: Iterable) -> ConflictResult:
    """Find occupying tasks that share the candidate's environment and branch.

    `candidate` is anything with `environment_config` and `branch_name`
    attributes (a TaskCandidate or a Task).
    """
    conflicting = [
        task
        for task in existing_tasks
        if is_occupying(task)
        and is_same_environment(candidate.environment_config, task.environment_config)
        and is_same_branch(candidate.branch_name, task.branch_name)
    ]

    if not conflicting:
        return ConflictResult(has_conflict=False)

    message = _conflict_message(candidate, conflicting)
    logger.debug("Conflict for %s: %s", environment_key(candidate.environment_config), message)
    return ConflictResult(has_conflict=True, conflicting_tasks=conflicting, message=message)


def _conflict_message(candidate, conflicting: list) -> str:
    count = len(conflicting)
    config = candidate.environment_config
    branch = candidate.branch_name or "default branch"

    if isinstance(config, WorktreeEnvironment):
        where = "in the same worktree"
    elif isinstance(config, RemoteEnvironment):
        where = "on the same remote host"
    else:
        where = "in the same environment"

    return (
        f"{count} {'task is' if count == 1 else 'tasks are'} already running {where} on {branch}. "
        "Running concurrent tasks in the same environment may cause conflicts."
    )


def get_active_environments(tasks: Iterable) -> list[ActiveEnvironment]:
    """Occupancy count per (environment, branch), in first-seen order."""
    active: dict[tuple[str, str | None], ActiveEnvironment] = {}

    for task in tasks:
        if not is_occupying(task):
            continue
        key = environment_key(task.environment_config)
        branch = task.branch_name or None
        entry = active.get((key, branch))
        if entry:
            entry.task_count += 1
        else:
            active[(key, branch)] = ActiveEnvironment(
                environment_type=task.environment_config.type,
                environment_key=key,
                branch_name=branch,
                task_count=1,
            )

    return list(active.values())
