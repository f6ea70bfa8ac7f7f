"""Debounced full-snapshot sync between the in-memory store and a remote store.

On ``start`` the remote snapshot wins when one exists; otherwise a local
legacy blob is migrated and uploaded once. Afterwards every store change
re-arms a trailing debounce timer, and when it fires the state current at
that moment is pushed whole. Conflicts resolve as last writer wins.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Set

from booktracker.actions import Action, ActionType
from booktracker.config import settings
from booktracker.ids import now_ms
from booktracker.migration import load_local_state
from booktracker.models import LibraryState
from booktracker.services.legacy_storage import LegacyStorage
from booktracker.services.remote_store import RemoteStore
from booktracker.store import Store

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


StatusListener = Callable[[SyncStatus, Optional[int]], None]


class SyncEngine:
    def __init__(self, store: Store, remote: RemoteStore, legacy_storage: Optional[LegacyStorage] = None,
                 debounce_seconds: Optional[float] = None) -> None:
        self.store = store
        self.remote = remote
        self.legacy_storage = legacy_storage
        self.debounce_seconds = (debounce_seconds if debounce_seconds is not None
                                 else settings.sync_debounce_seconds)

        self.user_id: Optional[str] = None
        self.loading = False
        self.status = SyncStatus.IDLE
        self.last_sync: Optional[int] = None
        self.last_error: Optional[str] = None

        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._status_listeners: List[StatusListener] = []

    # ------------------------- Status ------------------------- #
    def on_status(self, listener: StatusListener) -> Callable[[], None]:
        self._status_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: SyncStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.last_error = error
        for listener in list(self._status_listeners):
            try:
                listener(status, self.last_sync)
            except Exception:
                logger.exception("Sync status listener failed")

    # ------------------------- Lifecycle ------------------------- #
    async def start(self, user_id: str) -> None:
        """Attach to ``user_id``: load or migrate its library, then start pushing changes."""
        if self.user_id is not None:
            await self.stop()

        self.user_id = user_id
        self.loading = True
        try:
            if await self.remote.exists(user_id):
                snapshot = await self.remote.load_all(user_id)
                self._import(snapshot)
                self.last_sync = now_ms()
                logger.info(f"Loaded remote library for {user_id}: {len(self.store.get_state().books)} books")
            else:
                await self._migrate_local(user_id)
            self._set_status(SyncStatus.IDLE)
        except Exception as e:
            logger.exception(f"Initial sync for {user_id} failed")
            self._set_status(SyncStatus.ERROR, str(e))
        finally:
            self.loading = False
            self._unsubscribe = self.store.subscribe(self._on_change)

    async def _migrate_local(self, user_id: str) -> None:
        blob = self.legacy_storage.read() if self.legacy_storage is not None else None
        if not blob:
            logger.info(f"No remote or local library for {user_id}; starting empty")
            return
        state = load_local_state(blob)
        snapshot = state.to_snapshot()
        await self.remote.save_all(user_id, snapshot)
        self._import(snapshot)
        self.last_sync = now_ms()
        logger.info(f"Migrated local library for {user_id}: {len(state.books)} books")

    def _import(self, snapshot: dict) -> None:
        self.store.dispatch(Action(type=ActionType.IMPORT_DATA, payload=snapshot))

    async def stop(self) -> None:
        """Detach: cancel a pending push and stop listening. In-flight pushes complete."""
        self._cancel_timer()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.user_id = None

    async def flush(self) -> None:
        """Push the current state now, skipping any pending debounce."""
        self._cancel_timer()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        if self.user_id is not None:
            await self._push(self.user_id)

    async def wait_idle(self) -> None:
        """Wait for the pending timer and in-flight pushes to settle."""
        while True:
            pending = [t for t in (self._timer, *self._in_flight) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------- Debounce ------------------------- #
    def _on_change(self, state: LibraryState, action: Action) -> None:
        if self.user_id is None or self.loading:
            return
        self._schedule()

    def _schedule(self) -> None:
        self._generation += 1
        generation = self._generation
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; change will be pushed on next flush")
            return
        self._timer = loop.create_task(self._fire_after(generation, self.user_id))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _fire_after(self, generation: int, user_id: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation or user_id != self.user_id:
            return
        # Detach from the timer slot so stop() cannot cancel the push itself.
        task = asyncio.current_task()
        self._timer = None
        if task is not None:
            self._in_flight.add(task)
        try:
            await self._push(user_id)
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def _push(self, user_id: str) -> None:
        self._set_status(SyncStatus.SYNCING)
        snapshot = self.store.get_state().to_snapshot()
        try:
            await self.remote.save_all(user_id, snapshot)
        except Exception as e:
            logger.error(f"Sync push for {user_id} failed: {e}")
            self._set_status(SyncStatus.ERROR, str(e))
            return
        self.last_sync = now_ms()
        self._set_status(SyncStatus.IDLE)
        logger.debug(f"Pushed {len(snapshot['books'])} books for {user_id}")
