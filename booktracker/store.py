"""In-memory library store.

Holds the single authoritative ``LibraryState`` and serializes mutations
through :func:`booktracker.reducer.apply`. Dispatch is synchronous: when it
returns, ``get_state()`` already reflects the action and every subscriber
has been notified.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from booktracker.actions import Action
from booktracker.models import LibraryState
from booktracker.reducer import apply

logger = logging.getLogger(__name__)

Listener = Callable[[LibraryState, Action], None]


class Store:
    def __init__(self, initial_state: Optional[LibraryState] = None) -> None:
        self._state = initial_state if initial_state is not None else LibraryState()
        self._listeners: List[Listener] = []

    def get_state(self) -> LibraryState:
        return self._state

    def dispatch(self, action: Action) -> LibraryState:
        new_state = apply(self._state, action)
        if new_state is self._state:
            return new_state
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state, action)
            except Exception:
                logger.exception(f"Store listener failed on {action.type}")
        return new_state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
