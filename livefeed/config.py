"""Load and validate .livefeed/config.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


# Default config values
DEFAULTS: dict[str, Any] = {
    "database": ".livefeed/livefeed.db",
    "lazyload": {
        "initial_entries": 20,
        "entries_per_page": 20,
        "max_entries_per_page": 100,
    },
    "key_events": {
        "limit": 0,
        "marker": "/key",
        "rendered_class": "type-key",
    },
    "paging": {
        "max_entries": 500,
    },
}

REQUIRED_LAZYLOAD_KEYS = {"initial_entries", "entries_per_page", "max_entries_per_page"}


class ConfigError(Exception):
    """Raised when config is invalid or missing."""


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate(config: dict) -> None:
    """Validate required fields in config."""
    if not isinstance(config.get("database"), str) or not config["database"].strip():
        raise ConfigError("'database' must be a non-empty path string")

    lazyload = config.get("lazyload")
    if not isinstance(lazyload, dict):
        raise ConfigError("'lazyload' must be a mapping")
    missing = REQUIRED_LAZYLOAD_KEYS - set(lazyload.keys())
    if missing:
        raise ConfigError(f"'lazyload' missing required keys: {sorted(missing)}")
    for key in sorted(REQUIRED_LAZYLOAD_KEYS):
        if not isinstance(lazyload[key], int):
            raise ConfigError(f"'lazyload.{key}' must be an integer")
    if lazyload["max_entries_per_page"] <= 0:
        raise ConfigError("'lazyload.max_entries_per_page' must be positive")

    key_events = config.get("key_events")
    if not isinstance(key_events, dict):
        raise ConfigError("'key_events' must be a mapping")
    if not isinstance(key_events.get("limit"), int) or key_events["limit"] < 0:
        raise ConfigError("'key_events.limit' must be a non-negative integer")
    if not isinstance(key_events.get("marker"), str) or not key_events["marker"]:
        raise ConfigError("'key_events.marker' must be a non-empty string")

    paging = config.get("paging", {})
    if not isinstance(paging.get("max_entries"), int) or paging["max_entries"] <= 0:
        raise ConfigError("'paging.max_entries' must be a positive integer")


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .livefeed/config.yaml under project_root.

    Falls back to cwd if project_root is None. Merges with DEFAULTS
    so callers always get a full config dict.
    """
    root = Path(project_root) if project_root else Path.cwd()
    config_path = root / ".livefeed" / "config.yaml"

    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(DEFAULTS, raw)
    _validate(config)
    return config


def default_config() -> dict:
    """Return a validated copy of DEFAULTS, for callers without a config file."""
    config = _deep_merge(DEFAULTS, {})
    _validate(config)
    return config


def resolve_db_path(config: dict, project_root: Path) -> Path:
    """Resolve the SQLite record store path relative to project_root."""
    return Path(project_root) / config["database"]


def entries_per_page(config: dict) -> int:
    """Lazyload page size: non-positive falls back to the default, capped at the max."""
    lazyload = config["lazyload"]
    number = lazyload["entries_per_page"]
    if number > 0:
        return min(number, lazyload["max_entries_per_page"])
    return DEFAULTS["lazyload"]["entries_per_page"]


def initial_entries(config: dict) -> int:
    """Number of entries rendered on first load; negative falls back to the default."""
    number = config["lazyload"]["initial_entries"]
    return number if number >= 0 else DEFAULTS["lazyload"]["initial_entries"]
