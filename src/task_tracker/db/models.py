"""Data models for the task tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from task_tracker.core.environments import EnvironmentConfig, LocalEnvironment
from task_tracker.core.transitions import TaskStatus


class AIVendor(str, Enum):
    CLAUDE = "claude"
    CHATGPT = "chatgpt"
    GEMINI = "gemini"
    CURSOR = "cursor"
    COPILOT = "copilot"
    WINDSURF = "windsurf"
    CODY = "cody"
    AIDER = "aider"
    OTHER = "other"


@dataclass
class Project:
    id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ConfigPreset:
    id: str
    name: str
    environment_config: EnvironmentConfig = field(default_factory=LocalEnvironment)
    ai_vendor: str = AIVendor.CLAUDE.value
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def environment_type(self) -> str:
        return self.environment_config.type


@dataclass
class Task:
    id: str
    description: str
    status: str = TaskStatus.PENDING.value
    environment_config: EnvironmentConfig = field(default_factory=LocalEnvironment)
    ai_vendor: str = AIVendor.CLAUDE.value
    project_id: str | None = None
    preset_id: str | None = None
    parent_task_id: str | None = None
    branch_name: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def environment_type(self) -> str:
        return self.environment_config.type


@dataclass
class StatusHistory:
    id: int | None = None
    task_id: str = ""
    status: str = ""
    message: str | None = None
    timestamp: datetime | None = None
