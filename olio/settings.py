"""Loading and saving user settings.

Settings are stored as a list of dictionaries to preserve order.  Each
dictionary contains ``key``, ``value`` and ``type`` entries.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from . import DATA_DIR

# Path to the JSON file where settings are persisted.
SETTINGS_PATH = DATA_DIR / "settings.json"

# Default settings written on first run.
DEFAULT_SETTINGS: List[Dict[str, Any]] = [
    {"key": "username", "value": "", "type": "str"},
    {"key": "community_url", "value": "", "type": "str"},
    {"key": "community_key", "value": "", "type": "str"},
    {"key": "show_onboarding", "value": True, "type": "bool"},
]

# Environment variables consulted when a setting is left empty.
ENV_FALLBACKS = {
    "community_url": "SUPABASE_URL",
    "community_key": "SUPABASE_ANON_KEY",
}

_settings_cache: List[Dict[str, Any]] | None = None


def _defaults() -> List[Dict[str, Any]]:
    return [dict(item) for item in DEFAULT_SETTINGS]


def load_settings(path: Path | None = None) -> List[Dict[str, Any]]:
    """Load settings from ``path`` (default :data:`SETTINGS_PATH`) or create defaults."""

    path = Path(path or SETTINGS_PATH)
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if isinstance(data, list):
                return data
            logging.warning("Ignoring settings file %s: expected a list", path)
        except (OSError, json.JSONDecodeError):
            logging.exception("Failed to read settings from %s", path)
    settings = _defaults()
    save_settings(settings, path)
    return settings


def save_settings(settings: List[Dict[str, Any]], path: Path | None = None) -> None:
    """Persist ``settings`` to ``path`` (default :data:`SETTINGS_PATH`)."""

    path = Path(path or SETTINGS_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(settings, fh, indent=2)


def get_settings() -> List[Dict[str, Any]]:
    """Return the cached settings list, loading from disk if needed."""

    global _settings_cache
    if _settings_cache is None:
        _settings_cache = load_settings()
    return _settings_cache


def clear_cache() -> None:
    global _settings_cache
    _settings_cache = None


def get_value(key: str) -> Any:
    """Fetch the value associated with ``key``.

    Empty values of keys listed in :data:`ENV_FALLBACKS` are replaced by the
    corresponding environment variable when it is set.
    """

    value = None
    for item in get_settings():
        if item.get("key") == key:
            value = item.get("value")
            break
    if not value and key in ENV_FALLBACKS:
        return os.environ.get(ENV_FALLBACKS[key], value)
    return value


def set_value(key: str, value: Any) -> None:
    """Update ``key`` with ``value`` and persist the change."""

    settings = get_settings()
    for item in settings:
        if item.get("key") == key:
            item["value"] = value
            break
    else:
        settings.append({"key": key, "value": value, "type": type(value).__name__})
    save_settings(settings)
