import asyncio

import httpx
import pytest

from booktracker import actions
from booktracker.api import app
from booktracker.book import Book
from booktracker.config import settings
from booktracker.database import get_snapshot, initialize_database
from booktracker.services.http_client import OptimizedHTTPClient
from booktracker.services.legacy_storage import LegacyStorage
from booktracker.services.remote_store import HttpRemoteStore
from booktracker.services.sync import SyncEngine, SyncStatus
from booktracker.store import Store

pytestmark = pytest.mark.integration


@pytest.fixture
def asgi_remote(db_file):
    # ASGITransport does not run the lifespan
    initialize_database()
    client = OptimizedHTTPClient(transport=httpx.ASGITransport(app=app))
    return HttpRemoteStore(base_url="http://testserver", api_key=settings.api_key, client=client)


def test_first_sync_migrates_then_pushes_changes(tmp_path, asgi_remote):
    storage = LegacyStorage(tmp_path / "legacy.json")
    storage.write({
        "progreso": 1,
        "puntosActuales": 20,
        "tbr": [{"id": 1, "titulo": "The Way of Kings", "sagaId": 7, "sagaName": "Stormlight"}],
        "sagas": [{"id": 7, "name": "Stormlight", "count": 1, "isComplete": False}],
    })

    async def scenario():
        engine = SyncEngine(Store(), asgi_remote, storage, debounce_seconds=0.01)
        await engine.start("kaladin")
        assert engine.status == SyncStatus.IDLE
        engine.store.dispatch(actions.change_book_state(1, "read"))
        await engine.wait_idle()
        await engine.stop()
        return engine

    engine = asyncio.run(scenario())

    stored = get_snapshot("kaladin")
    assert stored["version"] == 2
    assert stored["data"]["books"][0]["status"] == "read"
    assert stored["data"]["sagas"][0]["is_complete"] is True
    assert stored["data"]["current_points"] == 20
    assert engine.store.get_state().find_saga(7).is_complete is True


def test_second_device_loads_remote_copy(tmp_path, asgi_remote):
    async def scenario():
        first = SyncEngine(Store(), asgi_remote, None, debounce_seconds=0.01)
        await first.start("vin")
        first.store.dispatch(actions.add_book(Book.create("The Well of Ascension", id=2)))
        await first.flush()
        await first.stop()

        second = SyncEngine(Store(), asgi_remote, LegacyStorage(tmp_path / "unused.json"))
        await second.start("vin")
        await second.stop()
        return second

    second = asyncio.run(scenario())
    assert [b.title for b in second.store.get_state().books] == ["The Well of Ascension"]
