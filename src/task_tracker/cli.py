"""CLI entry point for the task tracker."""

import json
import logging
import sys

import click

from task_tracker.config import get_config
from task_tracker.core import export as export_mod
from task_tracker.core import presets as presets_mod
from task_tracker.core import projects as projects_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core import vendors as vendors_mod
from task_tracker.core.conflicts import get_active_environments
from task_tracker.core.environments import (
    ENVIRONMENT_TYPES,
    LocalEnvironment,
    RemoteEnvironment,
    WorktreeEnvironment,
    environment_key,
    environment_to_dict,
)
from task_tracker.core.transitions import (
    InvalidTransitionError,
    TaskStatus,
    get_status_description,
    get_valid_actions,
    is_valid_transition,
)
from task_tracker.db.engine import get_db
from task_tracker.db.models import AIVendor

STATUS_CHOICES = [s.value for s in TaskStatus]
VENDOR_CHOICES = [v.value for v in AIVendor]


def _get_db():
    config = get_config()
    return get_db(config.db_path)


def environment_options(f):
    """Shared options describing where a task runs."""
    options = [
        click.option("--env", "env_type", type=click.Choice(ENVIRONMENT_TYPES), default=None,
                     help="Execution environment type"),
        click.option("--path", "wt_path", default=None, help="Worktree path (worktree env)"),
        click.option("--worktree-branch", default=None, help="Branch checked out in the worktree"),
        click.option("--host", default=None, help="Remote host (remote env)"),
        click.option("--port", type=int, default=None, help="Remote port (default 22)"),
        click.option("--user", default=None, help="Remote user"),
        click.option("--connection", type=click.Choice(["ssh", "url"]), default="ssh",
                     help="Remote connection type"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _build_environment(env_type, wt_path, worktree_branch, host, port, user, connection):
    if env_type is None:
        return None
    if env_type == "worktree":
        return WorktreeEnvironment(path=wt_path or "", branch=worktree_branch)
    if env_type == "remote":
        return RemoteEnvironment(host=host or "", connection_type=connection, port=port, user=user)
    return LocalEnvironment()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose):
    """tt - AI Task Tracker CLI"""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("project")
def project_group():
    """Manage projects."""
    pass


@project_group.command("add")
@click.argument("name")
@click.option("--description", "-d", default=None, help="Project description")
def project_add(name, description):
    """Create a new project."""
    project_id = tasks_mod.slugify(name)
    with _get_db() as db:
        if projects_mod.get_project(db, project_id):
            click.echo(f"Project already exists: {project_id}", err=True)
            sys.exit(1)
        try:
            project = projects_mod.create_project(db, project_id, name, description)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"Project created: {project.id} ({project.name})")


@project_group.command("list")
def project_list():
    """List projects."""
    with _get_db() as db:
        projects = projects_mod.list_projects(db)
        if not projects:
            click.echo("No projects found.")
            return
        for p in projects:
            desc = f" - {p.description}" if p.description else ""
            click.echo(f"  {p.id}: {p.name}{desc}")


@project_group.command("update")
@click.argument("project_id")
@click.option("--name", default=None, help="New project name")
@click.option("--description", "-d", default=None, help="New project description")
def project_update(project_id, name, description):
    """Rename a project or change its description."""
    with _get_db() as db:
        if not projects_mod.get_project(db, project_id):
            click.echo(f"Project not found: {project_id}", err=True)
            sys.exit(1)
        try:
            project = projects_mod.update_project(db, project_id, name=name, description=description)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"Updated project: {project.id} ({project.name})")


@project_group.command("delete")
@click.argument("project_id")
def project_delete(project_id):
    """Delete a project. Its tasks are kept."""
    with _get_db() as db:
        if not projects_mod.delete_project(db, project_id):
            click.echo(f"Project not found: {project_id}", err=True)
            sys.exit(1)
        click.echo(f"Deleted project: {project_id}")


# ── Preset Commands ───────────────────────────────────────────────────────────


@main.group("preset")
def preset_group():
    """Manage environment presets."""
    pass


@preset_group.command("add")
@click.argument("name")
@environment_options
@click.option("--vendor", type=click.Choice(VENDOR_CHOICES), default="claude", help="AI vendor")
def preset_add(name, env_type, wt_path, worktree_branch, host, port, user, connection, vendor):
    """Save an environment + vendor combination under a name."""
    env = _build_environment(env_type, wt_path, worktree_branch, host, port, user, connection)
    with _get_db() as db:
        try:
            preset = presets_mod.create_preset(db, name, env or LocalEnvironment(), vendor)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"Preset created: {preset.id} ({environment_key(preset.environment_config)}, {preset.ai_vendor})")


@preset_group.command("list")
def preset_list():
    """List presets."""
    with _get_db() as db:
        presets = presets_mod.list_presets(db)
        if not presets:
            click.echo("No presets found.")
            return
        for p in presets:
            click.echo(f"  {p.id}: {p.name} [{environment_key(p.environment_config)}] {p.ai_vendor}")


@preset_group.command("delete")
@click.argument("preset_id")
def preset_delete(preset_id):
    """Delete a preset."""
    with _get_db() as db:
        if not presets_mod.delete_preset(db, preset_id):
            click.echo(f"Preset not found: {preset_id}", err=True)
            sys.exit(1)
        click.echo(f"Deleted preset: {preset_id}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("description")
@environment_options
@click.option("--vendor", type=click.Choice(VENDOR_CHOICES), default=None, help="AI vendor")
@click.option("--project", default=None, help="Project ID")
@click.option("--preset", default=None, help="Preset ID to take environment and vendor from")
@click.option("--branch", default=None, help="Git branch the task works on")
@click.option("--force", is_flag=True, help="Create even if the environment is occupied")
def task_add(description, env_type, wt_path, worktree_branch, host, port, user, connection,
             vendor, project, preset, branch, force):
    """Create a new task."""
    config = get_config()
    env = _build_environment(env_type, wt_path, worktree_branch, host, port, user, connection)

    with _get_db() as db:
        if project and not projects_mod.get_project(db, project):
            click.echo(f"Project not found: {project}", err=True)
            sys.exit(1)

        candidate_env = env
        if candidate_env is None and preset:
            p = presets_mod.get_preset(db, preset)
            candidate_env = p.environment_config if p else None
        if candidate_env is not None:
            conflict = tasks_mod.check_conflicts(db, candidate_env, branch)
            if conflict.has_conflict:
                _report_conflict(conflict, config.blocks_on_conflict and not force)

        try:
            task = tasks_mod.create_task(
                db, description, env, vendor,
                project_id=project, preset_id=preset, branch_name=branch,
            )
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        click.echo(f"Created task: {task.id}")
        click.echo(f"  Status: {task.status}")
        click.echo(f"  Environment: {environment_key(task.environment_config)}")
        click.echo(f"  Vendor: {vendors_mod.get_vendor_display_name(task.ai_vendor)}")
        if task.branch_name:
            click.echo(f"  Branch: {task.branch_name}")
        if warning := vendors_mod.get_vendor_warning_message(task.ai_vendor):
            click.echo(f"  Warning: {warning}", err=True)


@task_group.command("list")
@click.option("--project", default=None, help="Project ID")
@click.option("--status", type=click.Choice(STATUS_CHOICES), default=None, help="Filter by status")
@click.option("--branch", default=None, help="Filter by branch")
@click.option("--search", default=None, help="Search descriptions")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(project, status, branch, search, json_output):
    """List tasks."""
    with _get_db() as db:
        tasks = tasks_mod.list_tasks(db, project, status=status, branch_name=branch, search=search)

        if json_output:
            click.echo(json.dumps([_task_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        status_icons = {
            "pending": "○",
            "running": "●",
            "paused": "‖",
            "disconnected": "!",
            "completed": "✓",
            "failed": "✗",
        }

        for task in tasks:
            icon = status_icons.get(task.status, "?")
            branch_info = f" [{task.branch_name}]" if task.branch_name else ""
            click.echo(
                f"  {icon} {task.id}: {task.description} ({task.status})"
                f" @ {environment_key(task.environment_config)}{branch_info}"
            )


@task_group.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)

        click.echo(f"Task: {task.id}")
        click.echo(f"  Description: {task.description}")
        click.echo(f"  Status: {task.status} ({get_status_description(task.status)})")
        click.echo(f"  Environment: {environment_key(task.environment_config)}")
        click.echo(f"  Vendor: {vendors_mod.get_vendor_display_name(task.ai_vendor)}")
        if task.project_id:
            click.echo(f"  Project: {task.project_id}")
        if task.branch_name:
            click.echo(f"  Branch: {task.branch_name}")
        if task.parent_task_id:
            click.echo(f"  Rerun of: {task.parent_task_id}")
        if task.error_message:
            click.echo(f"  Error: {task.error_message}")
        if task.created_at:
            click.echo(f"  Created: {task.created_at}")
        if task.started_at:
            click.echo(f"  Started: {task.started_at}")
        if task.completed_at:
            click.echo(f"  Completed: {task.completed_at}")

        actions = get_valid_actions(task.status)
        if actions:
            click.echo(f"  Actions: {', '.join(a['label'] + ' (' + a['status'] + ')' for a in actions)}")


@task_group.command("status")
@click.argument("task_id")
@click.argument("status", type=click.Choice(STATUS_CHOICES))
@click.option("--message", "-m", default=None, help="Note recorded in the status history")
@click.option("--force", is_flag=True, help="Start even if the environment is occupied")
def task_status(task_id, status, message, force):
    """Change a task's status."""
    config = get_config()
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)

        if status == TaskStatus.RUNNING.value and is_valid_transition(task.status, status):
            conflict = tasks_mod.check_conflicts(
                db, task.environment_config, task.branch_name, exclude_task_id=task.id
            )
            if conflict.has_conflict:
                _report_conflict(conflict, config.blocks_on_conflict and not force)

        try:
            task = tasks_mod.update_task_status(db, task_id, status, message)
        except InvalidTransitionError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"Updated {task.id}: {task.status}")


@task_group.command("actions")
@click.argument("task_id")
def task_actions(task_id):
    """Show the status changes available for a task."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)
        actions = get_valid_actions(task.status)
        if not actions:
            click.echo(f"Task {task_id} is {task.status}; no further actions.")
            return
        for a in actions:
            click.echo(f"  {a['label']}: tt task status {task_id} {a['status']}")


@task_group.command("rerun")
@click.argument("task_id")
@click.option("--description", "-d", default=None, help="Override the description")
@click.option("--branch", default=None, help="Override the branch")
def task_rerun(task_id, description, branch):
    """Create a new pending task from an existing one."""
    with _get_db() as db:
        kwargs = {"description": description}
        if branch is not None:
            kwargs["branch_name"] = branch
        task = tasks_mod.rerun_task(db, task_id, **kwargs)
        if not task:
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)
        click.echo(f"Created rerun: {task.id} (from {task_id})")


@task_group.command("history")
@click.argument("task_id")
def task_history(task_id):
    """Show a task's status history."""
    with _get_db() as db:
        if not tasks_mod.get_task(db, task_id):
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)
        for h in tasks_mod.get_status_history(db, task_id):
            note = f": {h.message}" if h.message else ""
            click.echo(f"  [{h.timestamp}] {h.status}{note}")


@task_group.command("delete")
@click.argument("task_id")
def task_delete(task_id):
    """Delete a task."""
    with _get_db() as db:
        if not tasks_mod.delete_task(db, task_id):
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)
        click.echo(f"Deleted task: {task_id}")


# ── Environment Commands ──────────────────────────────────────────────────────


@main.command("envs")
def envs():
    """Show environments currently occupied by running or paused tasks."""
    with _get_db() as db:
        active = get_active_environments(tasks_mod.list_occupying_tasks(db))
        if not active:
            click.echo("No active environments.")
            return
        for env in active:
            branch = env.branch_name or "default branch"
            click.echo(f"  {env.environment_key} on {branch}: {env.task_count} task(s)")


# ── Export Command ───────────────────────────────────────────────────────────


@main.command("export")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write to this file instead of stdout")
def export_command(output):
    """Export all tasks, projects, history and presets as JSON."""
    with _get_db() as db:
        payload = export_mod.export_data(db)
    text = json.dumps(payload, indent=2)
    if output:
        with open(output, "w") as f:
            f.write(text + "\n")
        counts = payload["counts"]
        click.echo(
            f"Exported {counts['tasks']} tasks, {counts['projects']} projects, "
            f"{counts['presets']} presets to {output}"
        )
    else:
        click.echo(text)


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to listen on")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the web dashboard."""
    import webbrowser

    from task_tracker.web.app import run_server

    config = get_config()
    host = host or config.host
    port = port or config.port
    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from task_tracker.mcp.server import mcp

    mcp.run(transport="stdio")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _report_conflict(conflict, block: bool):
    click.echo(f"Warning: {conflict.message}", err=True)
    for t in conflict.conflicting_tasks:
        click.echo(f"  - {t.id}: {t.description} ({t.status})", err=True)
    if block:
        click.echo("Aborted: environment is occupied (use --force to override).", err=True)
        sys.exit(1)


def _task_dict(task) -> dict:
    return {
        "id": task.id,
        "description": task.description,
        "status": task.status,
        "environment": environment_to_dict(task.environment_config),
        "ai_vendor": task.ai_vendor,
        "project": task.project_id,
        "branch": task.branch_name,
        "parent_task_id": task.parent_task_id,
        "created_at": task.created_at.isoformat() if task.created_at else None,
        "started_at": task.started_at.isoformat() if task.started_at else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }


if __name__ == "__main__":
    main()
