"""Execution environment configs and their identity rules.

An environment says *where* a task runs: the local machine, a git worktree,
or a remote host. Two configs are "the same place" when a second task there
could step on the first one. The identity helpers in this module are shared
by conflict detection and the active-environment report, so both always
agree on what counts as one environment.
"""

import re
from dataclasses import dataclass, field
from typing import ClassVar

DEFAULT_REMOTE_PORT = 22

_HOSTNAME_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")


@dataclass(frozen=True)
class LocalEnvironment:
    type: ClassVar[str] = "local"


@dataclass(frozen=True)
class WorktreeEnvironment:
    path: str
    branch: str | None = None
    type: ClassVar[str] = "worktree"


@dataclass(frozen=True)
class RemoteEnvironment:
    host: str
    connection_type: str = "ssh"
    port: int | None = None
    user: str | None = None
    type: ClassVar[str] = "remote"


@dataclass(frozen=True)
class UnknownEnvironment:
    """A stored config whose type this version does not recognize."""

    type: str
    raw: dict = field(default_factory=dict, compare=False, hash=False)


EnvironmentConfig = LocalEnvironment | WorktreeEnvironment | RemoteEnvironment | UnknownEnvironment

ENVIRONMENT_TYPES = (LocalEnvironment.type, WorktreeEnvironment.type, RemoteEnvironment.type)


@dataclass
class ValidationResult:
    is_valid: bool
    error: str | None = None
    warning: str | None = None


# ── Wire format ──────────────────────────────────────────────────────────────


def environment_from_dict(data: dict) -> EnvironmentConfig:
    """Parse the JSON form of an environment config.

    Unrecognized types parse to UnknownEnvironment rather than raising, so a
    bad row in storage never breaks listing or conflict checks. Anything that
    is not a JSON object raises ValueError.
    """
    if not isinstance(data, dict):
        raise ValueError("Environment config must be a JSON object")
    env_type = data.get("type")
    if env_type == "local":
        return LocalEnvironment()
    if env_type == "worktree":
        return WorktreeEnvironment(path=data.get("path", ""), branch=data.get("branch") or None)
    if env_type == "remote":
        port = data.get("port")
        return RemoteEnvironment(
            host=data.get("host", ""),
            connection_type=data.get("connectionType", "ssh"),
            port=int(port) if port is not None else None,
            user=data.get("user") or None,
        )
    return UnknownEnvironment(type=str(env_type), raw=dict(data))


def environment_to_dict(config: EnvironmentConfig) -> dict:
    if isinstance(config, WorktreeEnvironment):
        d = {"type": config.type, "path": config.path}
        if config.branch:
            d["branch"] = config.branch
        return d
    if isinstance(config, RemoteEnvironment):
        d = {"type": config.type, "connectionType": config.connection_type, "host": config.host}
        if config.port is not None:
            d["port"] = config.port
        if config.user:
            d["user"] = config.user
        return d
    if isinstance(config, UnknownEnvironment):
        return dict(config.raw) or {"type": config.type}
    return {"type": config.type}


# ── Identity ─────────────────────────────────────────────────────────────────


def normalize_port(port: int | None) -> int:
    return DEFAULT_REMOTE_PORT if port is None else port


def is_same_environment(a: EnvironmentConfig, b: EnvironmentConfig) -> bool:
    """Whether two configs point at the same execution environment.

    Local runs are independent and never match. Unknown types never match.
    """
    if type(a) is not type(b):
        return False
    if isinstance(a, WorktreeEnvironment):
        return a.path == b.path
    if isinstance(a, RemoteEnvironment):
        return a.host == b.host and normalize_port(a.port) == normalize_port(b.port)
    return False


def is_same_branch(a: str | None, b: str | None) -> bool:
    """Tri-state branch equality: two unspecified branches collide."""
    a = a or None
    b = b or None
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return a == b


def environment_key(config: EnvironmentConfig) -> str:
    """Stable string identity, consistent with is_same_environment for known types."""
    if isinstance(config, WorktreeEnvironment):
        return f"worktree:{config.path}"
    if isinstance(config, RemoteEnvironment):
        return f"remote:{config.host}:{normalize_port(config.port)}"
    return config.type


# ── Validation ───────────────────────────────────────────────────────────────


def validate_worktree_path(path: str) -> ValidationResult:
    if not path or not path.strip():
        return ValidationResult(is_valid=False, error="Worktree path is required")
    return ValidationResult(is_valid=True)


def validate_remote_config(host: str, port: int | None = None) -> ValidationResult:
    if not host or not host.strip():
        return ValidationResult(is_valid=False, error="Remote host is required")
    if not _HOSTNAME_RE.match(host) and not _IPV4_RE.match(host):
        return ValidationResult(is_valid=False, error="Invalid hostname or IP address")
    if port is not None and not 1 <= port <= 65535:
        return ValidationResult(is_valid=False, error="Port must be between 1 and 65535")
    return ValidationResult(is_valid=True)


def validate_environment_config(config: EnvironmentConfig) -> ValidationResult:
    if isinstance(config, WorktreeEnvironment):
        return validate_worktree_path(config.path)
    if isinstance(config, RemoteEnvironment):
        if config.connection_type not in ("ssh", "url"):
            return ValidationResult(is_valid=False, error="Connection type must be 'ssh' or 'url'")
        return validate_remote_config(config.host, config.port)
    if isinstance(config, UnknownEnvironment):
        return ValidationResult(is_valid=False, error=f"Unknown environment type: {config.type}")
    return ValidationResult(is_valid=True)
