"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

CONFLICT_POLICIES = ("warn", "block")


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".task_tracker" / "tracker.db")
    conflict_policy: str = "warn"
    host: str = "127.0.0.1"
    port: int = 8787

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("TT_DB_PATH"):
            config.db_path = Path(db)

        if policy := os.environ.get("TT_CONFLICT_POLICY"):
            policy = policy.strip().lower()
            if policy not in CONFLICT_POLICIES:
                raise ValueError(
                    f"TT_CONFLICT_POLICY must be one of {', '.join(CONFLICT_POLICIES)}, got '{policy}'"
                )
            config.conflict_policy = policy

        if host := os.environ.get("TT_HOST"):
            config.host = host

        if port := os.environ.get("TT_PORT"):
            config.port = int(port)

        return config

    @property
    def blocks_on_conflict(self) -> bool:
        return self.conflict_policy == "block"


def get_config() -> Config:
    return Config.from_env()
