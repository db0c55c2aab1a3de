"""Tests for the JSON export."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from task_tracker.core import export as export_mod
from task_tracker.core import presets as presets_mod
from task_tracker.core import projects as projects_mod
from task_tracker.core import tasks as tasks_mod
from task_tracker.core.environments import RemoteEnvironment, WorktreeEnvironment
from task_tracker.db.engine import init_db


@pytest.fixture
def db():
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield conn
        conn.close()


class TestExport:
    def test_empty_database(self, db):
        payload = export_mod.export_data(db)
        assert payload["version"] == "1.0"
        assert payload["counts"] == {"tasks": 0, "projects": 0, "statusHistory": 0, "presets": 0}
        assert payload["data"]["tasks"] == []

    def test_exports_everything(self, db):
        projects_mod.create_project(db, "demo", "Demo")
        presets_mod.create_preset(db, "Box", RemoteEnvironment(host="box", port=2222))
        tasks_mod.create_task(db, "First", WorktreeEnvironment(path="/wt"), project_id="demo")
        tasks_mod.create_task(db, "Second", preset_id="box")
        tasks_mod.update_task_status(db, "first", "running")

        payload = export_mod.export_data(db)
        assert payload["counts"] == {"tasks": 2, "projects": 1, "statusHistory": 3, "presets": 1}

        data = payload["data"]
        assert [t["id"] for t in data["tasks"]] == ["first", "second"]
        first = data["tasks"][0]
        assert first["environmentConfig"] == {"type": "worktree", "path": "/wt"}
        assert first["projectId"] == "demo"
        assert first["startedAt"] is not None
        assert data["tasks"][1]["presetId"] == "box"
        assert data["presets"][0]["environmentConfig"]["port"] == 2222
        assert [h["status"] for h in data["statusHistory"]] == ["pending", "pending", "running"]
        assert data["projects"][0]["updatedAt"] is not None

    def test_timestamp(self, db):
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert export_mod.export_data(db, now=now)["exportedAt"] == "2026-01-02T03:04:05+00:00"
