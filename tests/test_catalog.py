import json

import pytest

from olio.catalog import CatalogError, CatalogExercise, load_catalog
from olio.models import Category, MuscleGroup


def test_bundled_catalog_loads():
    catalog = load_catalog()
    assert catalog
    names = [item.name for item in catalog]
    assert len(names) == len(set(names))
    assert CatalogExercise("Bench Press", Category.FREE_WEIGHTS, MuscleGroup.CHEST) in catalog


def test_custom_catalog(tmp_path):
    path = tmp_path / "exercises.json"
    path.write_text(json.dumps([{"name": "Plank", "category": 2, "muscleGroup": 7}]))
    assert load_catalog(path) == [CatalogExercise("Plank", Category.BODYWEIGHT, MuscleGroup.ABS)]


def test_library_import_from_custom_catalog(controller, tmp_path):
    path = tmp_path / "exercises.json"
    path.write_text(json.dumps([{"name": "Plank", "category": 2, "muscleGroup": 7}]))
    created = controller.load_exercise_library(path)
    assert [e.name for e in created] == ["Plank"]


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"name": "Plank"}),
        json.dumps([{"name": "Plank", "category": 9, "muscleGroup": 7}]),
        json.dumps([{"category": 2, "muscleGroup": 7}]),
        json.dumps(["Plank"]),
    ],
)
def test_malformed_catalog(tmp_path, content):
    path = tmp_path / "exercises.json"
    path.write_text(content)
    with pytest.raises(CatalogError):
        load_catalog(path)


def test_missing_catalog(tmp_path):
    with pytest.raises(CatalogError):
        load_catalog(tmp_path / "missing.json")
