"""Tests for the web dashboard API."""

import os
import tempfile
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from task_tracker.core import projects as projects_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core.environments import RemoteEnvironment, WorktreeEnvironment
from task_tracker.db.engine import init_db
from task_tracker.web.app import create_app


@pytest.fixture
def web_env():
    """Set up a temp environment for web API testing."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        env = {"TT_DB_PATH": str(db_path), "TT_CONFLICT_POLICY": "warn"}
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        # Seed data
        db = init_db(db_path)
        projects_mod.create_project(db, "demo", "Demo Project")
        tasks_mod.create_task(db, "Setup database", WorktreeEnvironment(path="/repo/wt"), project_id="demo")
        tasks_mod.create_task(db, "Build API", RemoteEnvironment(host="x.com", port=22), project_id="demo")
        tasks_mod.create_task(db, "Write tests", project_id="demo")
        tasks_mod.update_task_status(db, "setup-database", "running")
        tasks_mod.update_task_status(db, "build-api", "running")
        tasks_mod.update_task_status(db, "build-api", "paused")
        db.close()

        app = create_app()
        client = TestClient(app)
        yield client

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class TestDashboardPage:
    def test_index_returns_html(self, web_env):
        resp = web_env.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "AI Task Tracker" in resp.text


class TestProjectsAPI:
    def test_list_projects(self, web_env):
        data = web_env.get("/api/projects").json()
        assert data[0]["id"] == "demo"

    def test_get_nonexistent_project(self, web_env):
        resp = web_env.get("/api/projects/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


class TestTasksAPI:
    def test_list_tasks(self, web_env):
        data = web_env.get("/api/tasks?projectId=demo").json()
        ids = {t["id"] for t in data["items"]}
        assert ids == {"setup-database", "build-api", "write-tests"}

    def test_list_by_status(self, web_env):
        data = web_env.get("/api/tasks?status=paused").json()
        assert [t["id"] for t in data["items"]] == ["build-api"]

    def test_list_bad_status(self, web_env):
        resp = web_env.get("/api/tasks?status=archived")
        assert resp.status_code == 400

    def test_get_task(self, web_env):
        data = web_env.get("/api/tasks/build-api").json()
        assert data["status"] == "paused"
        assert data["environmentKey"] == "remote:x.com:22"
        assert data["startedAt"] is not None

    def test_get_nonexistent_task(self, web_env):
        assert web_env.get("/api/tasks/nope").status_code == 404

    def test_create_task(self, web_env):
        resp = web_env.post("/api/tasks", json={
            "description": "New work",
            "environmentConfig": {"type": "worktree", "path": "/repo/other"},
            "aiVendor": "cursor",
            "branchName": "feat",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["branchName"] == "feat"
        assert "conflict" not in data

    def test_create_task_reports_conflict(self, web_env):
        resp = web_env.post("/api/tasks", json={
            "description": "Same slot",
            "environmentConfig": {"type": "remote", "connectionType": "ssh", "host": "x.com"},
        })
        assert resp.status_code == 201
        conflict = resp.json()["conflict"]
        assert conflict["hasConflict"] is True
        assert conflict["conflictingTasks"][0]["id"] == "build-api"
        assert "on the same remote host" in conflict["message"]

    def test_create_task_blocked_under_block_policy(self, web_env):
        os.environ["TT_CONFLICT_POLICY"] = "block"
        body = {"description": "Same slot", "environmentConfig": {"type": "worktree", "path": "/repo/wt"}}
        resp = web_env.post("/api/tasks", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONFLICT"

        resp = web_env.post("/api/tasks", json={**body, "force": True})
        assert resp.status_code == 201

    def test_create_task_validation(self, web_env):
        resp = web_env.post("/api/tasks", json={
            "description": "Bad",
            "environmentConfig": {"type": "remote", "host": ""},
        })
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_update_status(self, web_env):
        resp = web_env.patch("/api/tasks/setup-database", json={"status": "completed"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["completedAt"] is not None

    def test_invalid_transition(self, web_env):
        resp = web_env.patch("/api/tasks/write-tests", json={"status": "completed"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["validTransitions"] == ["running"]
        assert web_env.get("/api/tasks/write-tests").json()["status"] == "pending"

    def test_update_missing_task(self, web_env):
        resp = web_env.patch("/api/tasks/nope", json={"status": "running"})
        assert resp.status_code == 404

    def test_resume_excludes_self_from_conflicts(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"status": "running"})
        assert resp.status_code == 200
        assert "conflict" not in resp.json()

    def test_actions(self, web_env):
        data = web_env.get("/api/tasks/build-api/actions").json()
        assert data["actions"] == [{"status": "running", "label": "Resume"}]
        assert data["terminal"] is False

    def test_history(self, web_env):
        data = web_env.get("/api/tasks/build-api/history").json()
        assert [h["status"] for h in data] == ["paused", "running", "pending"]

    def test_rerun(self, web_env):
        resp = web_env.post("/api/tasks/build-api/rerun", json={"modifications": {"branchName": "retry"}})
        assert resp.status_code == 201
        data = resp.json()
        assert data["parentTaskId"] == "build-api"
        assert data["branchName"] == "retry"
        assert data["environmentKey"] == "remote:x.com:22"

    def test_rerun_missing(self, web_env):
        assert web_env.post("/api/tasks/nope/rerun").status_code == 404

    def test_delete(self, web_env):
        assert web_env.delete("/api/tasks/write-tests").status_code == 204
        assert web_env.get("/api/tasks/write-tests").status_code == 404


class TestEnvironmentsAPI:
    def test_check_conflicts(self, web_env):
        resp = web_env.post("/api/conflicts", json={
            "environmentConfig": {"type": "worktree", "path": "/repo/wt"},
        })
        data = resp.json()
        assert data["hasConflict"] is True
        assert "default branch" in data["message"]

    def test_check_conflicts_local(self, web_env):
        data = web_env.post("/api/conflicts", json={"environmentConfig": {"type": "local"}}).json()
        assert data == {"hasConflict": False, "conflictingTasks": [], "message": None}

    def test_active_environments(self, web_env):
        data = web_env.get("/api/environments/active").json()
        assert {(e["environmentKey"], e["taskCount"]) for e in data} == {
            ("worktree:/repo/wt", 1),
            ("remote:x.com:22", 1),
        }

    def test_summary(self, web_env):
        data = web_env.get("/api/summary?projectId=demo").json()
        assert data["total"] == 3
        assert data["counts"]["running"] == 1
        assert data["counts"]["paused"] == 1
        assert len(data["activeEnvironments"]) == 2


class TestPresetsAPI:
    def test_create_and_list(self, web_env):
        resp = web_env.post("/api/presets", json={
            "name": "Main worktree",
            "environmentConfig": {"type": "worktree", "path": "/repo/wt"},
            "aiVendor": "claude",
        })
        assert resp.status_code == 201
        data = web_env.get("/api/presets").json()
        assert data[0]["environmentType"] == "worktree"

    def test_duplicate_rejected(self, web_env):
        body = {"name": "Dup", "environmentConfig": {"type": "local"}}
        assert web_env.post("/api/presets", json=body).status_code == 201
        assert web_env.post("/api/presets", json=body).status_code == 400

    def test_update_preset(self, web_env):
        web_env.post("/api/presets", json={"name": "Box", "environmentConfig": {"type": "local"}})
        resp = web_env.patch("/api/presets/box", json={
            "environmentConfig": {"type": "remote", "host": "box.local"},
            "aiVendor": "aider",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Box"
        assert data["environmentType"] == "remote"
        assert data["aiVendor"] == "aider"
        assert web_env.get("/api/presets/box").json()["environmentConfig"]["host"] == "box.local"

    def test_update_missing_preset(self, web_env):
        assert web_env.patch("/api/presets/nope", json={"name": "x"}).status_code == 404

    def test_delete_preset(self, web_env):
        web_env.post("/api/presets", json={"name": "Temp", "environmentConfig": {"type": "local"}})
        assert web_env.delete("/api/presets/temp").status_code == 204
        assert web_env.get("/api/presets/temp").status_code == 404
        assert web_env.delete("/api/presets/temp").status_code == 404


class TestProjectMutationsAPI:
    def test_create_project(self, web_env):
        resp = web_env.post("/api/projects", json={"name": "Side Quest", "description": "extra"})
        assert resp.status_code == 201
        assert resp.json()["id"] == "side-quest"
        assert web_env.get("/api/projects/side-quest").json()["description"] == "extra"

    def test_create_duplicate_project(self, web_env):
        resp = web_env.post("/api/projects", json={"name": "Demo"})
        assert resp.status_code == 400
        assert "already exists" in resp.json()["error"]["details"]

    def test_create_project_requires_name(self, web_env):
        assert web_env.post("/api/projects", json={}).status_code == 400

    def test_update_project(self, web_env):
        resp = web_env.patch("/api/projects/demo", json={"name": "Demo 2"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Demo 2"
        assert resp.json()["description"] is None

    def test_update_missing_project(self, web_env):
        assert web_env.patch("/api/projects/nope", json={"name": "x"}).status_code == 404

    def test_delete_project_keeps_tasks(self, web_env):
        assert web_env.delete("/api/projects/demo").status_code == 204
        assert web_env.get("/api/projects/demo").status_code == 404
        assert web_env.get("/api/tasks/build-api").json()["projectId"] is None


class TestExportAPI:
    def test_export(self, web_env):
        resp = web_env.post("/api/export")
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].startswith("attachment; filename=\"ai-task-tracker-export-")
        data = resp.json()
        assert data["counts"]["tasks"] == 3
        assert data["counts"]["projects"] == 1
        assert data["counts"]["statusHistory"] == 6
        assert len(data["data"]["statusHistory"]) == 6


class TestRequestValidation:
    def test_invalid_transition_wins_over_conflict_under_block_policy(self, web_env):
        body = {"description": "Second slot", "environmentConfig": {"type": "worktree", "path": "/repo/wt"}}
        assert web_env.post("/api/tasks", json=body).status_code == 201
        web_env.patch("/api/tasks/second-slot", json={"status": "running"})
        web_env.patch("/api/tasks/second-slot", json={"status": "completed"})

        os.environ["TT_CONFLICT_POLICY"] = "block"
        resp = web_env.patch("/api/tasks/second-slot", json={"status": "running"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["validTransitions"] == []
        assert "Valid transitions from completed: none" in error["message"]

    def test_blocked_resume_still_conflicts(self, web_env):
        body = {"description": "Second slot", "environmentConfig": {"type": "worktree", "path": "/repo/wt"}}
        web_env.post("/api/tasks", json=body)
        os.environ["TT_CONFLICT_POLICY"] = "block"
        resp = web_env.patch("/api/tasks/second-slot", json={"status": "running"})
        assert resp.status_code == 409
        assert resp.json()["error"]["conflict"]["conflictingTasks"][0]["id"] == "setup-database"

    def test_unknown_project_on_create(self, web_env):
        resp = web_env.post("/api/tasks", json={"description": "x", "projectId": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"]["details"] == "Project not found: nope"

    def test_unknown_project_on_rerun(self, web_env):
        resp = web_env.post("/api/tasks/build-api/rerun", json={"modifications": {"projectId": "nope"}})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("path,body", [
        ("/api/tasks", {"description": "x", "environmentConfig": "local"}),
        ("/api/conflicts", {"environmentConfig": "local"}),
        ("/api/presets", {"name": "x", "environmentConfig": "local"}),
        ("/api/tasks/build-api/rerun", {"modifications": {"environmentConfig": ["local"]}}),
        ("/api/tasks/build-api/rerun", {"modifications": "again"}),
    ])
    def test_non_object_environment_config(self, web_env, path, body):
        resp = web_env.post(path, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
