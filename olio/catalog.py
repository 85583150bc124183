"""Bundled exercise catalog.

The catalog is a JSON array of ``{"name", "category", "muscleGroup"}``
objects using the integer codes of :class:`~olio.models.Category` and
:class:`~olio.models.MuscleGroup`.  It ships with the package, so a missing
or malformed file is a packaging error rather than something a user can fix:
:func:`load_catalog` raises :class:`CatalogError` instead of returning a
partial result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from . import CATALOG_PATH
from .models import Category, MuscleGroup


class CatalogError(RuntimeError):
    """Raised when the bundled catalog cannot be read or decoded."""


@dataclass(frozen=True)
class CatalogExercise:
    name: str
    category: Category
    muscle_group: MuscleGroup


def _decode_item(item: object, position: int) -> CatalogExercise:
    if not isinstance(item, dict):
        raise CatalogError(f"entry {position} is not an object")
    try:
        name = item["name"]
        category = Category(int(item["category"]))
        muscle_group = MuscleGroup(int(item["muscleGroup"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise CatalogError(f"entry {position} is invalid: {exc!r}") from exc
    if not isinstance(name, str) or not name.strip():
        raise CatalogError(f"entry {position} has no name")
    return CatalogExercise(name=name, category=category, muscle_group=muscle_group)


def load_catalog(path: Path = CATALOG_PATH) -> list[CatalogExercise]:
    """Return every exercise listed in the catalog at ``path``."""

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError as exc:
        logging.exception("Exercise catalog not found: %s", path)
        raise CatalogError(f"Failed to locate {path.name} in bundle.") from exc
    except json.JSONDecodeError as exc:
        logging.exception("Exercise catalog is not valid JSON: %s", path)
        raise CatalogError(f"Failed to decode {path.name} from bundle.") from exc

    if not isinstance(data, list):
        raise CatalogError(f"{path.name} must contain a JSON array")
    return [_decode_item(item, pos) for pos, item in enumerate(data)]
