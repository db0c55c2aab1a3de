"""Task management operations.

This is the layer that loads tasks from storage, runs them through the
status state machine and the conflict detector, and persists the result.
"""

import json
import logging
import re
import sqlite3
from datetime import datetime

from task_tracker.core import presets as presets_mod
from task_tracker.core import projects as projects_mod
from task_tracker.core.conflicts import (
    OCCUPYING_STATUSES,
    ConflictResult,
    TaskCandidate,
    detect_concurrent_tasks,
)
from task_tracker.core.environments import (
    EnvironmentConfig,
    LocalEnvironment,
    environment_from_dict,
    environment_to_dict,
    validate_environment_config,
)
from task_tracker.core.transitions import TaskStatus, timestamp_updates, validate_transition
from task_tracker.db.models import AIVendor, StatusHistory, Task

logger = logging.getLogger(__name__)

_UNSET = object()


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60].rstrip("-")


def unique_id(db: sqlite3.Connection, table: str, base_slug: str) -> str:
    """Generate an ID unique within `table`, appending a number if needed."""
    candidate = base_slug
    i = 2
    while db.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone():
        candidate = f"{base_slug}-{i}"
        i += 1
    return candidate


def create_task(
    db: sqlite3.Connection,
    description: str,
    environment_config: EnvironmentConfig | None = None,
    ai_vendor: str | None = None,
    project_id: str | None = None,
    preset_id: str | None = None,
    branch_name: str | None = None,
    parent_task_id: str | None = None,
    history_message: str = "Task created",
) -> Task:
    """Create a new pending task.

    When `preset_id` is given, the preset supplies the environment and vendor
    unless they are passed explicitly.
    """
    if not description or not description.strip():
        raise ValueError("Task description is required")
    if project_id and not projects_mod.get_project(db, project_id):
        raise ValueError(f"Project not found: {project_id}")

    if preset_id:
        preset = presets_mod.get_preset(db, preset_id)
        if not preset:
            raise ValueError(f"Preset not found: {preset_id}")
        environment_config = environment_config or preset.environment_config
        ai_vendor = ai_vendor or preset.ai_vendor

    environment_config = environment_config or LocalEnvironment()
    validation = validate_environment_config(environment_config)
    if not validation.is_valid:
        raise ValueError(f"Invalid environment config: {validation.error}")
    ai_vendor = AIVendor(ai_vendor or AIVendor.CLAUDE).value

    task_id = unique_id(db, "tasks", slugify(description) or "task")
    db.execute(
        """INSERT INTO tasks (id, description, status, project_id, environment_type,
                              environment_config, ai_vendor, preset_id, parent_task_id, branch_name)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            task_id,
            description,
            TaskStatus.PENDING.value,
            project_id,
            environment_config.type,
            json.dumps(environment_to_dict(environment_config)),
            ai_vendor,
            preset_id,
            parent_task_id,
            branch_name or None,
        ),
    )
    _log_status(db, task_id, TaskStatus.PENDING.value, history_message)
    db.commit()
    return get_task(db, task_id)


def get_task(db: sqlite3.Connection, task_id: str) -> Task | None:
    """Get a task by ID."""
    row = db.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if not row:
        return None
    return _row_to_task(row)


def list_tasks(
    db: sqlite3.Connection,
    project_id: str | None = None,
    status: str | None = None,
    branch_name: str | None = None,
    ai_vendor: str | None = None,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Task]:
    """List tasks with optional filters, newest first."""
    query = "SELECT * FROM tasks WHERE 1 = 1"
    params: list = []

    if project_id:
        query += " AND project_id = ?"
        params.append(project_id)
    if status:
        query += " AND status = ?"
        params.append(TaskStatus(status).value)
    if branch_name:
        query += " AND branch_name = ?"
        params.append(branch_name)
    if ai_vendor:
        query += " AND ai_vendor = ?"
        params.append(ai_vendor)
    if search:
        query += " AND description LIKE ?"
        params.append(f"%{search}%")

    query += " ORDER BY created_at DESC, rowid DESC"
    if limit is not None:
        query += " LIMIT ? OFFSET ?"
        params += [limit, offset]

    rows = db.execute(query, params).fetchall()
    return [_row_to_task(r) for r in rows]


def list_occupying_tasks(db: sqlite3.Connection) -> list[Task]:
    """Tasks currently holding an environment (running or paused)."""
    statuses = sorted(s.value for s in OCCUPYING_STATUSES)
    placeholders = ", ".join("?" for _ in statuses)
    rows = db.execute(
        f"SELECT * FROM tasks WHERE status IN ({placeholders}) ORDER BY created_at, rowid",
        statuses,
    ).fetchall()
    return [_row_to_task(r) for r in rows]


def count_by_status(db: sqlite3.Connection, project_id: str | None = None) -> dict[str, int]:
    counts = {s.value: 0 for s in TaskStatus}
    query = "SELECT status, COUNT(*) AS n FROM tasks"
    params: list = []
    if project_id:
        query += " WHERE project_id = ?"
        params.append(project_id)
    for row in db.execute(query + " GROUP BY status", params).fetchall():
        counts[row["status"]] = row["n"]
    return counts


def check_conflicts(
    db: sqlite3.Connection,
    environment_config: EnvironmentConfig,
    branch_name: str | None = None,
    exclude_task_id: str | None = None,
) -> ConflictResult:
    """Run conflict detection for a candidate against the stored occupying tasks."""
    existing = [t for t in list_occupying_tasks(db) if t.id != exclude_task_id]
    result = detect_concurrent_tasks(TaskCandidate(environment_config, branch_name), existing)
    if result.has_conflict:
        logger.info(
            "Conflict with %s: %s",
            ", ".join(t.id for t in result.conflicting_tasks),
            result.message,
        )
    return result


def update_task_status(
    db: sqlite3.Connection,
    task_id: str,
    status: str,
    message: str | None = None,
) -> Task | None:
    """Move a task to a new status. Returns the updated task.

    Raises InvalidTransitionError, leaving the task untouched, when the state
    machine does not allow the change.
    """
    task = get_task(db, task_id)
    if not task:
        return None

    new_status = TaskStatus(status)
    validate_transition(task.status, new_status)

    updates: dict = {"status": new_status.value}
    for name, value in timestamp_updates(new_status, task.started_at, task.completed_at).items():
        updates[name] = value.isoformat()
    if new_status == TaskStatus.FAILED and message:
        updates["error_message"] = message

    set_clause = ", ".join(f"{k} = ?" for k in updates)
    db.execute(
        f"UPDATE tasks SET {set_clause} WHERE id = ?",
        list(updates.values()) + [task_id],
    )
    _log_status(db, task_id, new_status.value, message)
    db.commit()
    logger.info("Task %s: %s -> %s", task_id, task.status, new_status.value)
    return get_task(db, task_id)


def rerun_task(
    db: sqlite3.Connection,
    task_id: str,
    description: str | None = None,
    environment_config: EnvironmentConfig | None = None,
    ai_vendor: str | None = None,
    project_id=_UNSET,
    branch_name=_UNSET,
) -> Task | None:
    """Create a new pending task from an existing one, with optional overrides.

    `project_id` and `branch_name` may be overridden with None to clear them.
    """
    original = get_task(db, task_id)
    if not original:
        return None

    task = create_task(
        db,
        description=description or original.description,
        environment_config=environment_config or original.environment_config,
        ai_vendor=ai_vendor or original.ai_vendor,
        project_id=original.project_id if project_id is _UNSET else project_id,
        branch_name=original.branch_name if branch_name is _UNSET else branch_name,
        parent_task_id=task_id,
        history_message=f"Rerun of task {task_id}",
    )
    if original.preset_id and presets_mod.get_preset(db, original.preset_id):
        db.execute("UPDATE tasks SET preset_id = ? WHERE id = ?", (original.preset_id, task.id))
        db.commit()
        task = get_task(db, task.id)
    return task


def get_status_history(db: sqlite3.Connection, task_id: str) -> list[StatusHistory]:
    """Status history for a task, newest first."""
    rows = db.execute(
        "SELECT * FROM status_history WHERE task_id = ? ORDER BY timestamp DESC, id DESC",
        (task_id,),
    ).fetchall()
    return [_row_to_history(r) for r in rows]


def list_all_status_history(db: sqlite3.Connection) -> list[StatusHistory]:
    """Every status history row, oldest first."""
    rows = db.execute("SELECT * FROM status_history ORDER BY id").fetchall()
    return [_row_to_history(r) for r in rows]


def delete_task(db: sqlite3.Connection, task_id: str) -> bool:
    """Delete a task and its history. Reruns of it are detached."""
    if not get_task(db, task_id):
        return False
    db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    db.commit()
    return True


def _log_status(db: sqlite3.Connection, task_id: str, status: str, message: str | None):
    db.execute(
        "INSERT INTO status_history (task_id, status, message) VALUES (?, ?, ?)",
        (task_id, status, message),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        description=row["description"],
        status=row["status"],
        environment_config=environment_from_dict(json.loads(row["environment_config"])),
        ai_vendor=row["ai_vendor"],
        project_id=row["project_id"],
        preset_id=row["preset_id"],
        parent_task_id=row["parent_task_id"],
        branch_name=row["branch_name"],
        error_message=row["error_message"],
        created_at=_parse_dt(row["created_at"]),
        started_at=_parse_dt(row["started_at"]),
        completed_at=_parse_dt(row["completed_at"]),
    )


def _row_to_history(row: sqlite3.Row) -> StatusHistory:
    return StatusHistory(
        id=row["id"],
        task_id=row["task_id"],
        status=row["status"],
        message=row["message"],
        timestamp=_parse_dt(row["timestamp"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
