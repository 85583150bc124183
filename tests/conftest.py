import os
import sys
import tempfile
from pathlib import Path

# Kivy reads these on import; keep it from parsing pytest's arguments and
# from writing logs and config into the user's home directory.
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_HOME", tempfile.mkdtemp(prefix="olio-kivy-"))

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from olio import settings
from olio.data_controller import DataController


@pytest.fixture
def controller():
    """An empty in-memory store."""
    dc = DataController(in_memory=True)
    yield dc
    dc.close()


@pytest.fixture
def sample_controller(controller):
    """An in-memory store holding the sample data."""
    controller.create_sample_data()
    return controller


@pytest.fixture
def sample_db(tmp_path: Path) -> Path:
    """Path to a durable store populated with the sample data."""
    db_path = tmp_path / "olio.db"
    dc = DataController(db_path=db_path)
    dc.create_sample_data()
    dc.close()
    return db_path


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Point the settings module at a temporary file with an empty cache."""
    path = tmp_path / "settings.json"
    monkeypatch.setattr(settings, "SETTINGS_PATH", path)
    monkeypatch.setattr(settings, "_settings_cache", None)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    return path
