"""Web dashboard API for the task tracker."""

import json
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from task_tracker.config import get_config
from task_tracker.core import presets as presets_mod
from task_tracker.core import projects as projects_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core.conflicts import get_active_environments
from task_tracker.core.environments import environment_from_dict
from task_tracker.core.export import (
    export_data,
    history_to_dict,
    preset_to_dict,
    project_to_dict,
    task_to_dict,
)
from task_tracker.core.transitions import (
    InvalidTransitionError,
    TaskStatus,
    get_status_description,
    get_valid_actions,
    is_terminal_status,
    is_valid_transition,
)
from task_tracker.db.engine import init_db
from task_tracker.web.dashboard import get_dashboard_html

logger = logging.getLogger(__name__)


def _get_db():
    config = get_config()
    return init_db(config.db_path)


def _error(code: str, message: str, status_code: int, **extra) -> JSONResponse:
    body = {"error": {"code": code, "message": message, **extra}}
    return JSONResponse(body, status_code=status_code)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValueError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_list_projects(request: Request):
    db = _get_db()
    try:
        projects = projects_mod.list_projects(db)
        return JSONResponse([project_to_dict(p) for p in projects])
    finally:
        db.close()


async def api_get_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("NOT_FOUND", "Project not found", 404)
        return JSONResponse(project_to_dict(project))
    finally:
        db.close()


async def api_create_project(request: Request):
    db = _get_db()
    try:
        body = await _json_body(request)
        name = body.get("name") or ""
        project_id = tasks_mod.slugify(name) if isinstance(name, str) else ""
        if not project_id:
            return _error("VALIDATION_ERROR", "Invalid request data", 400, details="name is required")
        project = projects_mod.create_project(db, project_id, name, body.get("description"))
        return JSONResponse(project_to_dict(project), status_code=201)
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_update_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        body = await _json_body(request)
        if not projects_mod.get_project(db, project_id):
            return _error("NOT_FOUND", "Project not found", 404)
        project = projects_mod.update_project(
            db, project_id, name=body.get("name"), description=body.get("description")
        )
        return JSONResponse(project_to_dict(project))
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_delete_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        if not projects_mod.delete_project(db, project_id):
            return _error("NOT_FOUND", "Project not found", 404)
        return Response(status_code=204)
    finally:
        db.close()


async def api_list_tasks(request: Request):
    q = request.query_params
    db = _get_db()
    try:
        limit = int(q.get("limit", 50))
        offset = int(q.get("offset", 0))
        tasks = tasks_mod.list_tasks(
            db,
            project_id=q.get("projectId"),
            status=q.get("status"),
            branch_name=q.get("branchName"),
            ai_vendor=q.get("aiVendor"),
            search=q.get("search"),
            limit=limit,
            offset=offset,
        )
        return JSONResponse({
            "items": [task_to_dict(t) for t in tasks],
            "limit": limit,
            "offset": offset,
        })
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid query parameters", 400, details=str(e))
    finally:
        db.close()


async def api_create_task(request: Request):
    config = get_config()
    db = _get_db()
    try:
        body = await _json_body(request)
        env = body.get("environmentConfig")
        environment_config = environment_from_dict(env) if env else None
        branch_name = body.get("branchName") or None

        conflict_env = environment_config
        if conflict_env is None and body.get("presetId"):
            preset = presets_mod.get_preset(db, body["presetId"])
            conflict_env = preset.environment_config if preset else None

        conflict = None
        if conflict_env is not None:
            conflict = tasks_mod.check_conflicts(db, conflict_env, branch_name)
            if conflict.has_conflict and config.blocks_on_conflict and not body.get("force"):
                return _error("CONFLICT", conflict.message, 409, conflict=_conflict_dict(conflict))

        task = tasks_mod.create_task(
            db,
            description=body.get("description", ""),
            environment_config=environment_config,
            ai_vendor=body.get("aiVendor"),
            project_id=body.get("projectId"),
            preset_id=body.get("presetId"),
            branch_name=branch_name,
        )
        result = task_to_dict(task)
        if conflict and conflict.has_conflict:
            result["conflict"] = _conflict_dict(conflict)
        return JSONResponse(result, status_code=201)
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("NOT_FOUND", "Task not found", 404)
        return JSONResponse(task_to_dict(task))
    finally:
        db.close()


async def api_update_task(request: Request):
    task_id = request.path_params["task_id"]
    config = get_config()
    db = _get_db()
    try:
        body = await _json_body(request)
        status = body.get("status")
        if status is None:
            return _error("VALIDATION_ERROR", "Invalid request data", 400, details="status is required")
        status = TaskStatus(status)

        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("NOT_FOUND", "Task not found", 404)

        conflict = None
        if status == TaskStatus.RUNNING and is_valid_transition(task.status, status):
            conflict = tasks_mod.check_conflicts(
                db, task.environment_config, task.branch_name, exclude_task_id=task.id
            )
            if conflict.has_conflict and config.blocks_on_conflict and not body.get("force"):
                return _error("CONFLICT", conflict.message, 409, conflict=_conflict_dict(conflict))

        task = tasks_mod.update_task_status(db, task_id, status, body.get("message"))
        result = task_to_dict(task)
        if conflict and conflict.has_conflict:
            result["conflict"] = _conflict_dict(conflict)
        return JSONResponse(result)
    except InvalidTransitionError as e:
        return _error(
            "INVALID_TRANSITION",
            str(e),
            400,
            validTransitions=[s.value for s in e.valid_next],
        )
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_delete_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        if not tasks_mod.delete_task(db, task_id):
            return _error("NOT_FOUND", "Task not found", 404)
        return Response(status_code=204)
    finally:
        db.close()


async def api_task_history(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        history = tasks_mod.get_status_history(db, task_id)
        return JSONResponse([history_to_dict(h) for h in history])
    finally:
        db.close()


async def api_task_actions(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("NOT_FOUND", "Task not found", 404)
        return JSONResponse({
            "status": task.status,
            "description": get_status_description(task.status),
            "terminal": is_terminal_status(task.status),
            "actions": get_valid_actions(task.status),
        })
    finally:
        db.close()


async def api_rerun_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        body = await _json_body(request) if await request.body() else {}
        mods = body.get("modifications") or {}
        if not isinstance(mods, dict):
            raise ValueError("modifications must be a JSON object")
        kwargs = {
            "description": mods.get("description"),
            "ai_vendor": mods.get("aiVendor"),
        }
        if mods.get("environmentConfig"):
            kwargs["environment_config"] = environment_from_dict(mods["environmentConfig"])
        if "projectId" in mods:
            kwargs["project_id"] = mods["projectId"]
        if "branchName" in mods:
            kwargs["branch_name"] = mods["branchName"]

        task = tasks_mod.rerun_task(db, task_id, **kwargs)
        if not task:
            return _error("NOT_FOUND", "Original task not found", 404)
        return JSONResponse(task_to_dict(task), status_code=201)
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_check_conflicts(request: Request):
    db = _get_db()
    try:
        body = await _json_body(request)
        env = body.get("environmentConfig")
        if not env:
            return _error("VALIDATION_ERROR", "Invalid request data", 400,
                          details="environmentConfig is required")
        conflict = tasks_mod.check_conflicts(
            db,
            environment_from_dict(env),
            body.get("branchName") or None,
            exclude_task_id=body.get("excludeTaskId"),
        )
        return JSONResponse(_conflict_dict(conflict))
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_active_environments(request: Request):
    db = _get_db()
    try:
        active = get_active_environments(tasks_mod.list_occupying_tasks(db))
        return JSONResponse([_active_env_dict(a) for a in active])
    finally:
        db.close()


async def api_list_presets(request: Request):
    db = _get_db()
    try:
        return JSONResponse([preset_to_dict(p) for p in presets_mod.list_presets(db)])
    finally:
        db.close()


async def api_create_preset(request: Request):
    db = _get_db()
    try:
        body = await _json_body(request)
        preset = presets_mod.create_preset(
            db,
            body.get("name", ""),
            environment_from_dict(body.get("environmentConfig") or {"type": "local"}),
            body.get("aiVendor", "claude"),
        )
        return JSONResponse(preset_to_dict(preset), status_code=201)
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_get_preset(request: Request):
    preset_id = request.path_params["preset_id"]
    db = _get_db()
    try:
        preset = presets_mod.get_preset(db, preset_id)
        if not preset:
            return _error("NOT_FOUND", "Preset not found", 404)
        return JSONResponse(preset_to_dict(preset))
    finally:
        db.close()


async def api_update_preset(request: Request):
    preset_id = request.path_params["preset_id"]
    db = _get_db()
    try:
        body = await _json_body(request)
        env = body.get("environmentConfig")
        preset = presets_mod.update_preset(
            db,
            preset_id,
            name=body.get("name"),
            environment_config=environment_from_dict(env) if env is not None else None,
            ai_vendor=body.get("aiVendor"),
        )
        if not preset:
            return _error("NOT_FOUND", "Preset not found", 404)
        return JSONResponse(preset_to_dict(preset))
    except ValueError as e:
        return _error("VALIDATION_ERROR", "Invalid request data", 400, details=str(e))
    finally:
        db.close()


async def api_delete_preset(request: Request):
    preset_id = request.path_params["preset_id"]
    db = _get_db()
    try:
        if not presets_mod.delete_preset(db, preset_id):
            return _error("NOT_FOUND", "Preset not found", 404)
        return Response(status_code=204)
    finally:
        db.close()


async def api_export(request: Request):
    db = _get_db()
    try:
        payload = export_data(db)
    finally:
        db.close()
    stamp = payload["exportedAt"][:19].replace(":", "").replace("-", "")
    return JSONResponse(
        payload,
        headers={"Content-Disposition": f'attachment; filename="ai-task-tracker-export-{stamp}.json"'},
    )


async def api_summary(request: Request):
    project_id = request.query_params.get("projectId")
    db = _get_db()
    try:
        counts = tasks_mod.count_by_status(db, project_id)
        total = sum(counts.values())
        finished = counts[TaskStatus.COMPLETED.value] + counts[TaskStatus.FAILED.value]
        success = (counts[TaskStatus.COMPLETED.value] / finished * 100) if finished else 0
        active = get_active_environments(tasks_mod.list_occupying_tasks(db))
        return JSONResponse({
            "projectId": project_id,
            "counts": counts,
            "total": total,
            "successRatePct": round(success, 1),
            "activeEnvironments": [_active_env_dict(a) for a in active],
        })
    finally:
        db.close()


# ── Serialization ─────────────────────────────────────────────────────────────


def _conflict_dict(c) -> dict:
    return {
        "hasConflict": c.has_conflict,
        "conflictingTasks": [task_to_dict(t) for t in c.conflicting_tasks],
        "message": c.message,
    }


def _active_env_dict(a) -> dict:
    return {
        "environmentType": a.environment_type,
        "environmentKey": a.environment_key,
        "branchName": a.branch_name,
        "taskCount": a.task_count,
    }


# ── App ───────────────────────────────────────────────────────────────────────


def create_app() -> Starlette:
    routes = [
        Route("/", index),
        Route("/api/projects", api_list_projects, methods=["GET"]),
        Route("/api/projects", api_create_project, methods=["POST"]),
        Route("/api/projects/{project_id}", api_get_project, methods=["GET"]),
        Route("/api/projects/{project_id}", api_update_project, methods=["PATCH"]),
        Route("/api/projects/{project_id}", api_delete_project, methods=["DELETE"]),
        Route("/api/tasks", api_list_tasks, methods=["GET"]),
        Route("/api/tasks", api_create_task, methods=["POST"]),
        Route("/api/tasks/{task_id}", api_get_task, methods=["GET"]),
        Route("/api/tasks/{task_id}", api_update_task, methods=["PATCH"]),
        Route("/api/tasks/{task_id}", api_delete_task, methods=["DELETE"]),
        Route("/api/tasks/{task_id}/history", api_task_history),
        Route("/api/tasks/{task_id}/actions", api_task_actions),
        Route("/api/tasks/{task_id}/rerun", api_rerun_task, methods=["POST"]),
        Route("/api/conflicts", api_check_conflicts, methods=["POST"]),
        Route("/api/environments/active", api_active_environments),
        Route("/api/presets", api_list_presets, methods=["GET"]),
        Route("/api/presets", api_create_preset, methods=["POST"]),
        Route("/api/presets/{preset_id}", api_get_preset, methods=["GET"]),
        Route("/api/presets/{preset_id}", api_update_preset, methods=["PATCH"]),
        Route("/api/presets/{preset_id}", api_delete_preset, methods=["DELETE"]),
        Route("/api/summary", api_summary),
        Route("/api/export", api_export, methods=["POST"]),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    logger.info("Serving dashboard on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port)
