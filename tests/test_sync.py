import asyncio

from booktracker import actions
from booktracker.book import Book
from booktracker.errors import RemoteStoreError
from booktracker.models import LibraryState
from booktracker.services.legacy_storage import LegacyStorage
from booktracker.services.remote_store import InMemoryRemoteStore
from booktracker.services.sync import SyncEngine, SyncStatus
from booktracker.store import Store

DEBOUNCE = 0.05
USER = "alice"


def _snapshot(*titles):
    state = LibraryState(books=tuple(Book.create(t, id=i) for i, t in enumerate(titles, 1)))
    return state.to_snapshot()


class FailingRemote(InMemoryRemoteStore):
    def __init__(self, fail_exists=False, fail_save=False, **kwargs):
        super().__init__(**kwargs)
        self.fail_exists = fail_exists
        self.fail_save = fail_save

    async def exists(self, user_id):
        if self.fail_exists:
            raise RemoteStoreError("network down")
        return await super().exists(user_id)

    async def save_all(self, user_id, snapshot):
        if self.fail_save:
            raise RemoteStoreError("write rejected", status_code=500)
        await super().save_all(user_id, snapshot)


class SlowRemote(InMemoryRemoteStore):
    async def save_all(self, user_id, snapshot):
        await asyncio.sleep(0.2)
        await super().save_all(user_id, snapshot)


def _engine(remote, tmp_path=None, store=None):
    storage = LegacyStorage(tmp_path / "local.json") if tmp_path else None
    return SyncEngine(store or Store(), remote, storage, debounce_seconds=DEBOUNCE)


# ------------------------- start ------------------------- #
def test_start_loads_existing_remote_snapshot(tmp_path):
    remote = InMemoryRemoteStore({USER: _snapshot("Sabriel", "Lirael")})
    engine = _engine(remote, tmp_path)

    asyncio.run(engine.start(USER))

    assert [b.title for b in engine.store.get_state().books] == ["Sabriel", "Lirael"]
    assert engine.status == SyncStatus.IDLE
    assert engine.last_sync is not None
    assert engine.loading is False
    assert remote.save_count == 0


def test_start_migrates_legacy_blob_once(tmp_path):
    storage = LegacyStorage(tmp_path / "local.json")
    storage.write({"progreso": 3, "puntosActuales": 8, "tbr": [{"id": 1, "titulo": "Abhorsen"}]})
    remote = InMemoryRemoteStore()
    engine = SyncEngine(Store(), remote, storage, debounce_seconds=DEBOUNCE)

    asyncio.run(engine.start(USER))

    assert remote.save_count == 1
    assert remote.documents[USER]["books"][0]["title"] == "Abhorsen"
    assert engine.store.get_state().current_points == 8
    assert engine.status == SyncStatus.IDLE


def test_start_with_nothing_keeps_defaults(tmp_path):
    remote = InMemoryRemoteStore()
    engine = _engine(remote, tmp_path)
    asyncio.run(engine.start(USER))
    assert engine.store.get_state() == LibraryState()
    assert remote.save_count == 0


def test_start_failure_sets_error_and_keeps_defaults(tmp_path):
    engine = _engine(FailingRemote(fail_exists=True), tmp_path)
    asyncio.run(engine.start(USER))
    assert engine.status == SyncStatus.ERROR
    assert "network down" in engine.last_error
    assert engine.loading is False
    assert engine.store.get_state() == LibraryState()


def test_malformed_legacy_blob_sets_error(tmp_path):
    storage = LegacyStorage(tmp_path / "local.json")
    storage.write({"progreso": 0, "tbr": [{"id": 1}]})
    remote = InMemoryRemoteStore()
    engine = SyncEngine(Store(), remote, storage, debounce_seconds=DEBOUNCE)

    asyncio.run(engine.start(USER))

    assert engine.status == SyncStatus.ERROR
    assert remote.save_count == 0
    assert engine.store.get_state().books == ()


# ------------------------- debounce ------------------------- #
def test_burst_of_changes_pushes_once_with_latest_state():
    remote = InMemoryRemoteStore()
    engine = _engine(remote)

    async def scenario():
        await engine.start(USER)
        for i in range(3):
            engine.store.dispatch(actions.add_book(Book.create(f"Book {i}", id=i + 1)))
            await asyncio.sleep(DEBOUNCE / 10)
        await engine.wait_idle()

    asyncio.run(scenario())

    assert remote.save_count == 1
    assert len(remote.documents[USER]["books"]) == 3
    assert engine.status == SyncStatus.IDLE


def test_status_listeners_see_syncing_then_idle():
    seen = []
    engine = _engine(InMemoryRemoteStore())
    engine.on_status(lambda status, last_sync: seen.append(status))

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(10))
        await engine.wait_idle()

    asyncio.run(scenario())
    assert seen[-2:] == [SyncStatus.SYNCING, SyncStatus.IDLE]


def test_failed_push_sets_error_without_retry():
    remote = FailingRemote(fail_save=True)
    engine = _engine(remote)

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(10))
        await engine.wait_idle()

    asyncio.run(scenario())
    assert engine.status == SyncStatus.ERROR
    assert remote.save_count == 0
    assert engine.store.get_state().current_points == 10


def test_stop_cancels_pending_push():
    remote = InMemoryRemoteStore()
    engine = _engine(remote)

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(10))
        await engine.stop()
        await asyncio.sleep(DEBOUNCE * 3)

    asyncio.run(scenario())
    assert remote.save_count == 0
    assert engine.user_id is None


def test_stop_lets_in_flight_push_finish():
    remote = SlowRemote()
    engine = _engine(remote)

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(10))
        await asyncio.sleep(DEBOUNCE * 2)
        await engine.stop()
        await engine.wait_idle()

    asyncio.run(scenario())
    assert remote.save_count == 1
    assert remote.documents[USER]["current_points"] == 10


def test_change_during_in_flight_push_is_pushed_next():
    remote = SlowRemote()
    engine = _engine(remote)

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(1))
        await asyncio.sleep(DEBOUNCE * 2)
        assert engine.status == SyncStatus.SYNCING
        engine.store.dispatch(actions.earn_points(2))
        await engine.wait_idle()

    asyncio.run(scenario())
    assert engine.store.get_state().current_points == 3
    assert remote.save_count == 2
    assert remote.documents[USER]["current_points"] == 3
    assert engine.status == SyncStatus.IDLE


def test_flush_pushes_immediately():
    remote = InMemoryRemoteStore()
    engine = SyncEngine(Store(), remote, None, debounce_seconds=60)

    async def scenario():
        await engine.start(USER)
        engine.store.dispatch(actions.earn_points(7))
        await engine.flush()

    asyncio.run(scenario())
    assert remote.save_count == 1
    assert remote.documents[USER]["current_points"] == 7


def test_changes_without_user_are_not_pushed():
    remote = InMemoryRemoteStore()
    engine = _engine(remote)

    async def scenario():
        engine.store.dispatch(actions.earn_points(7))
        await asyncio.sleep(DEBOUNCE * 3)

    asyncio.run(scenario())
    assert remote.save_count == 0
