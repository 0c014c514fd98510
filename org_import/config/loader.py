from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_DEPARTMENT_COLUMNS,
    DEFAULT_POSITION_COLUMNS,
    BatchImportConfig,
    DatabaseConfig,
    ImportConfig,
    TableConfig,
)

"""Config loader.

Responsibilities:
- Load YAML (default ``config/import.yml``)
- Validate against the packaged ``config_schema.json``
- Apply defaults for every omitted key
- Overlay database settings from the environment (``.env`` is loaded by the CLI)
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "config_from_mapping",
    "apply_env_overrides",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

# environment variable -> DatabaseConfig field
_ENV_DATABASE_KEYS = {
    "DATABASE_URL": "dsn",
    "PGHOST": "host",
    "PGPORT": "port",
    "PGUSER": "user",
    "PGPASSWORD": "password",
    "PGDATABASE": "database",
}


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"config validation failed at {location}: {e.message}") from e


def _table(raw: Mapping[str, Any] | None, default_table: str, default_columns: dict[str, str]) -> TableConfig:
    raw = raw or {}
    columns = dict(default_columns)
    columns.update(raw.get("columns") or {})
    return TableConfig(table=raw.get("table", default_table), columns=columns)


def _batch(raw: Mapping[str, Any] | None) -> BatchImportConfig:
    raw = dict(raw or {})
    auto = raw.get("batch_size") == "auto"
    if auto:
        raw.pop("batch_size")
    try:
        return BatchImportConfig(auto_batch_size=auto, **raw)
    except ValueError as e:
        raise ConfigError(f"invalid batch settings: {e}") from e


def config_from_mapping(data: Mapping[str, Any]) -> ImportConfig:
    """Build an ``ImportConfig`` from already parsed (and validated) data."""
    tables = data.get("tables") or {}
    db_raw = data.get("database") or {}
    return ImportConfig(
        batch=_batch(data.get("batch")),
        departments=_table(tables.get("departments"), "departments", DEFAULT_DEPARTMENT_COLUMNS),
        positions=_table(tables.get("positions"), "positions", DEFAULT_POSITION_COLUMNS),
        max_hierarchy_depth=data.get("max_hierarchy_depth", 20),
        logs_directory=data.get("logs_directory", "./logs"),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def load_config(path: Path | str | None = None) -> ImportConfig:
    """Load and validate a YAML config file.

    ``path=None`` means the default location; a missing default file yields
    the built-in defaults, while a missing explicit path is an error.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return ImportConfig()
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)
    return config_from_mapping(data)


def apply_env_overrides(
    config: ImportConfig, environ: Mapping[str, str] | None = None
) -> ImportConfig:
    """Overlay ``DATABASE_URL`` / ``PG*`` variables onto the database section."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for env_key, field_name in _ENV_DATABASE_KEYS.items():
        value = environ.get(env_key)
        if not value:
            continue
        if field_name == "port":
            try:
                overrides[field_name] = int(value)
            except ValueError as e:
                raise ConfigError(f"{env_key} must be an integer: {value!r}") from e
        else:
            overrides[field_name] = value
    if not overrides:
        return config
    return replace(config, database=replace(config.database, **overrides))
