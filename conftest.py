import pytest

from booktracker.config import settings
from booktracker.models import LibraryState
from booktracker.store import Store
from booktracker.ui_helpers import OUTPUT_MODE_ENV


@pytest.fixture(autouse=True)
def _plain_cli_output(monkeypatch):
    # CLI tests assert on plain output
    monkeypatch.delenv(OUTPUT_MODE_ENV, raising=False)


@pytest.fixture
def state_file(tmp_path, monkeypatch):
    """Per-test local library file used by the CLI and legacy storage."""
    path = tmp_path / "library_state.json"
    monkeypatch.setattr(settings, "state_file", str(path))
    return path


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    """Per-test snapshot database."""
    path = tmp_path / "snapshots.db"
    monkeypatch.setattr(settings, "db_file", str(path))
    return path


@pytest.fixture
def api_client(db_file):
    from fastapi.testclient import TestClient

    from booktracker.api import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def api_headers():
    return {"X-API-Key": settings.api_key}


@pytest.fixture
def store():
    return Store(LibraryState())
