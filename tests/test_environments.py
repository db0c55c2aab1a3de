"""Tests for environment configs and identity rules."""

import pytest

from task_tracker.core import environments as env_mod
from task_tracker.core.environments import (
    LocalEnvironment,
    RemoteEnvironment,
    UnknownEnvironment,
    WorktreeEnvironment,
)


class TestWireFormat:
    def test_parse_local(self):
        assert env_mod.environment_from_dict({"type": "local"}) == LocalEnvironment()

    def test_parse_worktree(self):
        env = env_mod.environment_from_dict({"type": "worktree", "path": "/a", "branch": "dev"})
        assert env == WorktreeEnvironment(path="/a", branch="dev")

    def test_parse_remote(self):
        env = env_mod.environment_from_dict(
            {"type": "remote", "connectionType": "url", "host": "x.com", "port": 2222, "user": "me"}
        )
        assert env == RemoteEnvironment(host="x.com", connection_type="url", port=2222, user="me")

    def test_parse_unknown_type(self):
        env = env_mod.environment_from_dict({"type": "docker", "image": "py"})
        assert isinstance(env, UnknownEnvironment)
        assert env.type == "docker"
        assert env_mod.environment_to_dict(env) == {"type": "docker", "image": "py"}

    def test_remote_dict_omits_missing_port(self):
        d = env_mod.environment_to_dict(RemoteEnvironment(host="x.com"))
        assert d == {"type": "remote", "connectionType": "ssh", "host": "x.com"}


class TestSameEnvironment:
    def test_local_never_matches(self):
        assert not env_mod.is_same_environment(LocalEnvironment(), LocalEnvironment())

    def test_different_types(self):
        assert not env_mod.is_same_environment(
            WorktreeEnvironment(path="/a"), RemoteEnvironment(host="a")
        )

    def test_worktree_by_path_only(self):
        a = WorktreeEnvironment(path="/a", branch="x")
        b = WorktreeEnvironment(path="/a", branch="y")
        assert env_mod.is_same_environment(a, b)
        assert not env_mod.is_same_environment(a, WorktreeEnvironment(path="/b"))

    def test_remote_default_port(self):
        assert env_mod.is_same_environment(
            RemoteEnvironment(host="x.com", port=22), RemoteEnvironment(host="x.com")
        )
        assert env_mod.is_same_environment(
            RemoteEnvironment(host="x.com"), RemoteEnvironment(host="x.com")
        )

    def test_remote_port_differs(self):
        assert not env_mod.is_same_environment(
            RemoteEnvironment(host="x.com", port=22), RemoteEnvironment(host="x.com", port=2222)
        )

    def test_remote_host_differs(self):
        assert not env_mod.is_same_environment(
            RemoteEnvironment(host="x.com"), RemoteEnvironment(host="y.com")
        )

    def test_remote_user_ignored(self):
        assert env_mod.is_same_environment(
            RemoteEnvironment(host="x.com", user="a"), RemoteEnvironment(host="x.com", user="b")
        )

    def test_unknown_never_matches(self):
        a = UnknownEnvironment(type="docker")
        assert not env_mod.is_same_environment(a, UnknownEnvironment(type="docker"))


class TestSameBranch:
    @pytest.mark.parametrize("a,b,expected", [
        (None, None, True),
        ("", None, True),
        ("main", None, False),
        (None, "main", False),
        ("main", "main", True),
        ("main", "dev", False),
    ])
    def test_tri_state(self, a, b, expected):
        assert env_mod.is_same_branch(a, b) is expected


class TestEnvironmentKey:
    def test_keys(self):
        assert env_mod.environment_key(LocalEnvironment()) == "local"
        assert env_mod.environment_key(WorktreeEnvironment(path="/a")) == "worktree:/a"
        assert env_mod.environment_key(RemoteEnvironment(host="x.com")) == "remote:x.com:22"
        assert env_mod.environment_key(RemoteEnvironment(host="x.com", port=2222)) == "remote:x.com:2222"

    def test_key_agrees_with_identity(self):
        a = RemoteEnvironment(host="x.com", port=22)
        b = RemoteEnvironment(host="x.com")
        assert env_mod.environment_key(a) == env_mod.environment_key(b)


class TestValidation:
    def test_local_valid(self):
        assert env_mod.validate_environment_config(LocalEnvironment()).is_valid

    def test_worktree_requires_path(self):
        result = env_mod.validate_environment_config(WorktreeEnvironment(path="  "))
        assert not result.is_valid
        assert result.error == "Worktree path is required"

    @pytest.mark.parametrize("host", ["example.com", "build-01", "10.0.0.5"])
    def test_remote_valid_hosts(self, host):
        assert env_mod.validate_environment_config(RemoteEnvironment(host=host)).is_valid

    @pytest.mark.parametrize("host,error", [
        ("", "Remote host is required"),
        ("bad host!", "Invalid hostname or IP address"),
    ])
    def test_remote_invalid_hosts(self, host, error):
        result = env_mod.validate_environment_config(RemoteEnvironment(host=host))
        assert not result.is_valid
        assert result.error == error

    @pytest.mark.parametrize("port", [0, 65536])
    def test_remote_port_range(self, port):
        result = env_mod.validate_environment_config(RemoteEnvironment(host="x.com", port=port))
        assert result.error == "Port must be between 1 and 65535"

    def test_unknown_type_invalid(self):
        assert not env_mod.validate_environment_config(UnknownEnvironment(type="docker")).is_valid

    @pytest.mark.parametrize("data", ["local", ["local"], None, 3])
    def test_non_object_rejected(self, data):
        with pytest.raises(ValueError, match="must be a JSON object"):
            env_mod.environment_from_dict(data)
