"""Saved environment + vendor presets for quick task creation."""

import json
import sqlite3
from datetime import datetime

from task_tracker.core.environments import (
    EnvironmentConfig,
    environment_from_dict,
    environment_to_dict,
    validate_environment_config,
)
from task_tracker.db.models import AIVendor, ConfigPreset


def create_preset(
    db: sqlite3.Connection,
    name: str,
    environment_config: EnvironmentConfig,
    ai_vendor: str = AIVendor.CLAUDE.value,
) -> ConfigPreset:
    """Create a named preset. Names are unique."""
    from task_tracker.core.tasks import slugify, unique_id

    if not name or not name.strip():
        raise ValueError("Preset name is required")
    validation = validate_environment_config(environment_config)
    if not validation.is_valid:
        raise ValueError(f"Invalid environment config: {validation.error}")
    ai_vendor = AIVendor(ai_vendor).value

    if get_preset_by_name(db, name):
        raise ValueError(f"Preset already exists: {name}")

    preset_id = unique_id(db, "config_presets", slugify(name) or "preset")
    db.execute(
        """INSERT INTO config_presets (id, name, environment_type, environment_config, ai_vendor)
           VALUES (?, ?, ?, ?, ?)""",
        (
            preset_id,
            name,
            environment_config.type,
            json.dumps(environment_to_dict(environment_config)),
            ai_vendor,
        ),
    )
    db.commit()
    return get_preset(db, preset_id)


def get_preset(db: sqlite3.Connection, preset_id: str) -> ConfigPreset | None:
    row = db.execute("SELECT * FROM config_presets WHERE id = ?", (preset_id,)).fetchone()
    if not row:
        return None
    return _row_to_preset(row)


def get_preset_by_name(db: sqlite3.Connection, name: str) -> ConfigPreset | None:
    row = db.execute("SELECT * FROM config_presets WHERE name = ?", (name,)).fetchone()
    if not row:
        return None
    return _row_to_preset(row)


def list_presets(db: sqlite3.Connection) -> list[ConfigPreset]:
    rows = db.execute("SELECT * FROM config_presets ORDER BY name").fetchall()
    return [_row_to_preset(r) for r in rows]


def update_preset(
    db: sqlite3.Connection,
    preset_id: str,
    name: str | None = None,
    environment_config: EnvironmentConfig | None = None,
    ai_vendor: str | None = None,
) -> ConfigPreset | None:
    """Update preset fields. Returns None if the preset does not exist.

    Tasks already created from the preset keep their own copy of the config.
    """
    preset = get_preset(db, preset_id)
    if not preset:
        return None

    updates: dict = {}
    if name is not None:
        if not name.strip():
            raise ValueError("Preset name is required")
        other = get_preset_by_name(db, name)
        if other and other.id != preset_id:
            raise ValueError(f"Preset already exists: {name}")
        updates["name"] = name
    if environment_config is not None:
        validation = validate_environment_config(environment_config)
        if not validation.is_valid:
            raise ValueError(f"Invalid environment config: {validation.error}")
        updates["environment_type"] = environment_config.type
        updates["environment_config"] = json.dumps(environment_to_dict(environment_config))
    if ai_vendor is not None:
        updates["ai_vendor"] = AIVendor(ai_vendor).value
    if not updates:
        return preset

    set_clause = ", ".join(f"{k} = ?" for k in updates)
    db.execute(
        f"UPDATE config_presets SET {set_clause}, updated_at = datetime('now') WHERE id = ?",
        list(updates.values()) + [preset_id],
    )
    db.commit()
    return get_preset(db, preset_id)


def delete_preset(db: sqlite3.Connection, preset_id: str) -> bool:
    """Delete a preset. Tasks created from it keep their own copy of the config."""
    if not get_preset(db, preset_id):
        return False
    db.execute("DELETE FROM config_presets WHERE id = ?", (preset_id,))
    db.commit()
    return True


def _row_to_preset(row: sqlite3.Row) -> ConfigPreset:
    return ConfigPreset(
        id=row["id"],
        name=row["name"],
        environment_config=environment_from_dict(json.loads(row["environment_config"])),
        ai_vendor=row["ai_vendor"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
