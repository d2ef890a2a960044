from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import ConfigError
from .models import AppConfig

DATABASE_PATH_ENV = "BACKCAST_DATABASE_PATH"


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    database_path = os.environ.get(DATABASE_PATH_ENV)
    if not database_path:
        return data
    database = data.get("database", {})
    if not isinstance(database, dict):
        msg = "database must be a table"
        raise ConfigError(msg)
    return {**data, "database": {**database, "path": database_path}}


def load_config(path: Path) -> AppConfig:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        msg = f"config not found: {path}"
        raise ConfigError(msg) from exc
    except tomllib.TOMLDecodeError as exc:
        msg = "toml parse error"
        raise ConfigError(msg) from exc

    try:
        return AppConfig.from_raw(_apply_env_overrides(data))
    except ValidationError as exc:
        msg = f"invalid config: {path}"
        raise ConfigError(msg) from exc


def resolve_database_path(config: AppConfig, config_path: Path) -> Path:
    """Configured path relative to the config file, or ``<config>.sqlite`` beside it."""
    if config.database.path is None:
        return config_path.with_suffix(".sqlite")
    if config.database.path.is_absolute():
        return config.database.path
    return config_path.parent / config.database.path
