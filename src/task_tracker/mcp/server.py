"""MCP server exposing task tracker tools."""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from task_tracker.config import Config, get_config
from task_tracker.core import presets as presets_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core.conflicts import get_active_environments
from task_tracker.core.environments import environment_from_dict, environment_key, environment_to_dict
from task_tracker.core.transitions import InvalidTransitionError, get_valid_actions, is_valid_transition
from task_tracker.db.engine import init_db


@dataclass
class AppContext:
    db: sqlite3.Connection
    config: Config


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Initialize DB connection on startup, close on shutdown."""
    config = get_config()
    db = init_db(config.db_path)
    try:
        yield AppContext(db=db, config=config)
    finally:
        db.close()


mcp = FastMCP("task-tracker", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def create_task(
    ctx: Context,
    description: str,
    environment_config: dict | None = None,
    ai_vendor: str | None = None,
    project_id: str | None = None,
    preset_id: str | None = None,
    branch_name: str | None = None,
    force: bool = False,
) -> dict:
    """Record a new pending task.

    environment_config is {"type": "local"}, {"type": "worktree", "path": ...}
    or {"type": "remote", "connectionType": "ssh", "host": ..., "port": ...}.
    Any conflict with running or paused tasks is reported under "conflict";
    when the tracker is configured to block on conflicts, the task is not
    created unless force is true.
    """
    app = _ctx(ctx)
    try:
        env = environment_from_dict(environment_config) if environment_config else None
        conflict_env = env
        if conflict_env is None and preset_id:
            preset = presets_mod.get_preset(app.db, preset_id)
            conflict_env = preset.environment_config if preset else None
        conflict = None
        if conflict_env is not None:
            conflict = tasks_mod.check_conflicts(app.db, conflict_env, branch_name)
            if conflict.has_conflict and app.config.blocks_on_conflict and not force:
                return {"error": conflict.message, "conflict": _conflict_to_dict(conflict)}
        task = tasks_mod.create_task(
            app.db, description, env, ai_vendor,
            project_id=project_id, preset_id=preset_id, branch_name=branch_name,
        )
    except ValueError as e:
        return {"error": str(e)}
    result = _task_to_dict(task)
    if conflict and conflict.has_conflict:
        result["conflict"] = _conflict_to_dict(conflict)
    return result


@mcp.tool()
def list_tasks(
    ctx: Context,
    project_id: str | None = None,
    status: str | None = None,
    branch_name: str | None = None,
) -> list[dict]:
    """List tasks, optionally filtered by project, status and branch."""
    app = _ctx(ctx)
    tasks = tasks_mod.list_tasks(app.db, project_id, status=status, branch_name=branch_name)
    return [_task_to_dict(t) for t in tasks]


@mcp.tool()
def get_task(ctx: Context, task_id: str) -> dict:
    """Get full details of a task including the actions available from its status."""
    app = _ctx(ctx)
    task = tasks_mod.get_task(app.db, task_id)
    if not task:
        return {"error": f"Task not found: {task_id}"}
    result = _task_to_dict(task)
    result["actions"] = get_valid_actions(task.status)
    return result


@mcp.tool()
def update_task_status(
    ctx: Context,
    task_id: str,
    status: str,
    message: str | None = None,
    force: bool = False,
) -> dict:
    """Update a task's status.

    Valid transitions: pending -> running; running -> completed, failed,
    paused, disconnected; paused -> running; disconnected -> running, failed.
    completed and failed are final. Moving to running is refused when the
    environment is occupied and the tracker blocks on conflicts, unless
    force is true.
    """
    app = _ctx(ctx)
    conflict = None
    try:
        existing = tasks_mod.get_task(app.db, task_id)
        if existing and status == "running" and is_valid_transition(existing.status, status):
            conflict = tasks_mod.check_conflicts(
                app.db, existing.environment_config, existing.branch_name, exclude_task_id=task_id
            )
            if conflict.has_conflict and app.config.blocks_on_conflict and not force:
                return {"error": conflict.message, "conflict": _conflict_to_dict(conflict)}
        task = tasks_mod.update_task_status(app.db, task_id, status, message)
    except InvalidTransitionError as e:
        return {"error": str(e), "valid_transitions": [s.value for s in e.valid_next]}
    except ValueError as e:
        return {"error": str(e)}
    if not task:
        return {"error": f"Task not found: {task_id}"}
    result = _task_to_dict(task)
    if conflict and conflict.has_conflict:
        result["conflict"] = _conflict_to_dict(conflict)
    return result


@mcp.tool()
def rerun_task(ctx: Context, task_id: str, description: str | None = None) -> dict:
    """Create a new pending task from an existing one."""
    app = _ctx(ctx)
    try:
        task = tasks_mod.rerun_task(app.db, task_id, description=description)
    except ValueError as e:
        return {"error": str(e)}
    if not task:
        return {"error": f"Task not found: {task_id}"}
    return _task_to_dict(task)


@mcp.tool()
def get_task_history(ctx: Context, task_id: str) -> list[dict]:
    """Status history of a task, newest first."""
    app = _ctx(ctx)
    return [
        {
            "status": h.status,
            "message": h.message,
            "timestamp": h.timestamp.isoformat() if h.timestamp else None,
        }
        for h in tasks_mod.get_status_history(app.db, task_id)
    ]


# ── Environment Tools ─────────────────────────────────────────────────────────


@mcp.tool()
def check_conflicts(
    ctx: Context,
    environment_config: dict,
    branch_name: str | None = None,
) -> dict:
    """Check whether a task in this environment and branch would collide with running or paused tasks."""
    app = _ctx(ctx)
    try:
        env = environment_from_dict(environment_config)
    except ValueError as e:
        return {"error": str(e)}
    conflict = tasks_mod.check_conflicts(app.db, env, branch_name)
    return _conflict_to_dict(conflict)


@mcp.tool()
def list_active_environments(ctx: Context) -> list[dict]:
    """List environment + branch combinations occupied by running or paused tasks."""
    app = _ctx(ctx)
    return [
        {
            "environment_type": a.environment_type,
            "environment_key": a.environment_key,
            "branch_name": a.branch_name,
            "task_count": a.task_count,
        }
        for a in get_active_environments(tasks_mod.list_occupying_tasks(app.db))
    ]


# ── Helpers ───────────────────────────────────────────────────────────────────


def _task_to_dict(task) -> dict:
    return {
        "id": task.id,
        "description": task.description,
        "status": task.status,
        "environment": environment_to_dict(task.environment_config),
        "environment_key": environment_key(task.environment_config),
        "ai_vendor": task.ai_vendor,
        "project_id": task.project_id,
        "branch_name": task.branch_name,
        "parent_task_id": task.parent_task_id,
        "error_message": task.error_message,
        "created_at": task.created_at.isoformat() if task.created_at else None,
        "started_at": task.started_at.isoformat() if task.started_at else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }


def _conflict_to_dict(conflict) -> dict:
    return {
        "has_conflict": conflict.has_conflict,
        "conflicting_tasks": [t.id for t in conflict.conflicting_tasks],
        "message": conflict.message,
    }
