"""Shared constants for the Olio data layer."""

from __future__ import annotations

from pathlib import Path

DATA_DIR = Path(__file__).resolve().parent / "data"

# Durable store used outside of tests and previews
DEFAULT_DB_PATH = DATA_DIR / "olio.db"

SCHEMA_PATH = DATA_DIR / "olio_schema.sql"

# Bundled exercise catalog imported by ``load_exercise_library``
CATALOG_PATH = DATA_DIR / "exercises.json"

# Sets per exercise created by the sample data
DEFAULT_SETS_PER_EXERCISE = 3

# An exercise can hold at most this many sets within one workout
MAX_SETS_PER_EXERCISE = 99

__all__ = [
    "DATA_DIR",
    "DEFAULT_DB_PATH",
    "SCHEMA_PATH",
    "CATALOG_PATH",
    "DEFAULT_SETS_PER_EXERCISE",
    "MAX_SETS_PER_EXERCISE",
]
