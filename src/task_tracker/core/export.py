"""JSON export of the whole tracker, and the camelCase record shapes it uses.

The web API serves records in the same shapes, so an export can be read
with the same client code as the live API.
"""

import sqlite3
from datetime import datetime, timezone

from task_tracker.core import presets as presets_mod
from task_tracker.core import projects as projects_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core.environments import environment_key, environment_to_dict

EXPORT_VERSION = "1.0"


def _iso(dt):
    return dt.isoformat() if dt else None


def project_to_dict(p) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def preset_to_dict(p) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "environmentType": p.environment_type,
        "environmentConfig": environment_to_dict(p.environment_config),
        "aiVendor": p.ai_vendor,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def task_to_dict(t) -> dict:
    return {
        "id": t.id,
        "description": t.description,
        "status": t.status,
        "environmentType": t.environment_type,
        "environmentConfig": environment_to_dict(t.environment_config),
        "environmentKey": environment_key(t.environment_config),
        "aiVendor": t.ai_vendor,
        "projectId": t.project_id,
        "presetId": t.preset_id,
        "parentTaskId": t.parent_task_id,
        "branchName": t.branch_name,
        "errorMessage": t.error_message,
        "createdAt": _iso(t.created_at),
        "startedAt": _iso(t.started_at),
        "completedAt": _iso(t.completed_at),
    }


def history_to_dict(h) -> dict:
    return {
        "id": h.id,
        "taskId": h.task_id,
        "status": h.status,
        "message": h.message,
        "timestamp": _iso(h.timestamp),
    }


def export_data(db: sqlite3.Connection, now: datetime | None = None) -> dict:
    """Snapshot every task, project, history row and preset.

    Returns {"version", "exportedAt", "data": {...}, "counts": {...}} where
    counts mirrors the length of each list in data.
    """
    now = now or datetime.now(timezone.utc)
    data = {
        "tasks": [task_to_dict(t) for t in reversed(tasks_mod.list_tasks(db))],
        "projects": [project_to_dict(p) for p in projects_mod.list_projects(db)],
        "statusHistory": [history_to_dict(h) for h in tasks_mod.list_all_status_history(db)],
        "presets": [preset_to_dict(p) for p in presets_mod.list_presets(db)],
    }
    return {
        "version": EXPORT_VERSION,
        "exportedAt": now.isoformat(),
        "data": data,
        "counts": {name: len(items) for name, items in data.items()},
    }
