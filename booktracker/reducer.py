"""The reducer: the only code that produces new library states.

``apply(state, action)`` is pure and total. Unknown action types return the
state unchanged, and actions naming an id that does not exist are silent
no-ops. After every book/saga-affecting action the saga aggregates are
recomputed, and after every handled action orphan sagas are pruned, so any
read right after a dispatch sees a consistent state.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional

from booktracker import points
from booktracker.actions import Action, ActionType, BOOK_AFFECTING_ACTIONS
from booktracker.book import Book, BookStatus, Reading, parse_status
from booktracker.history import append_history, previous_status
from booktracker.ids import generate_unique_id, now_ms
from booktracker.models import LibraryState, Saga, SagaNotification, ScanRecord
from booktracker.sagas import (
    clean_duplicate_sagas,
    fix_saga_data,
    new_saga,
    newly_completed,
    prune_orphan_sagas,
    recompute_sagas,
    resolve_saga_for_book,
)

logger = logging.getLogger(__name__)

SEARCH_HISTORY_LIMIT = 10

Handler = Callable[[LibraryState, Mapping[str, Any], int], LibraryState]
_HANDLERS: dict[ActionType, Handler] = {}


def handles(action_type: ActionType) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        _HANDLERS[action_type] = func
        return func
    return register


def apply(state: LibraryState, action: Action, timestamp: Optional[int] = None) -> LibraryState:
    """Compute the state that results from applying ``action`` to ``state``."""
    try:
        action_type = ActionType(action.type)
    except ValueError:
        logger.debug(f"Ignoring unknown action type {action.type!r}")
        return state

    handler = _HANDLERS.get(action_type)
    if handler is None:
        return state

    ts = timestamp if timestamp is not None else now_ms()
    new_state = handler(state, action.payload, ts)

    if action_type in BOOK_AFFECTING_ACTIONS:
        new_state = recompute_sagas(new_state, ts)

    keep = _exempt_from_pruning(state, new_state, action_type, action.payload)
    new_state = prune_orphan_sagas(new_state, keep=keep)

    return _queue_saga_notifications(state, new_state, ts)


def _exempt_from_pruning(before: LibraryState, after: LibraryState, action_type: ActionType,
                         payload: Mapping[str, Any]) -> frozenset:
    """Saga ids that survive this dispatch even without linked books.

    A saga created by ADD_SAGA has had no chance to receive books yet, and an
    IMPORT_DATA without a ``sagas`` field keeps the existing sagas as they are.
    Both are pruned by the next dispatch if still unreferenced.
    """
    if action_type == ActionType.ADD_SAGA:
        return frozenset(s.id for s in after.sagas) - {s.id for s in before.sagas}
    if action_type == ActionType.IMPORT_DATA and payload.get("sagas") is None:
        return frozenset(s.id for s in before.sagas)
    return frozenset()


def _queue_saga_notifications(before: LibraryState, after: LibraryState, ts: int) -> LibraryState:
    if after.sagas is before.sagas or not after.config.get("saga_notifications", True):
        return after
    completed = newly_completed(before.sagas, after.sagas)
    if not completed:
        return after
    queued = tuple(
        SagaNotification(id=generate_unique_id(), saga_name=s.name, timestamp=ts)
        for s in completed
    )
    return replace(after, saga_notifications=after.saga_notifications + queued)


def _map_book(state: LibraryState, book_id: Any, func: Callable[[Book], Book]) -> LibraryState:
    """Replace the book with ``book_id`` by ``func(book)``; no-op when absent."""
    for index, book in enumerate(state.books):
        if book.id == book_id:
            updated = func(book)
            if updated is book:
                return state
            books = state.books[:index] + (updated,) + state.books[index + 1:]
            return replace(state, books=books)
    return state


def _as_book(value: Any) -> Book:
    return value if isinstance(value, Book) else Book.from_dict(value)


# ------------------------- Config ------------------------- #
@handles(ActionType.SET_CONFIG)
def _set_config(state, payload, ts):
    return replace(state, config={**state.config, **payload})


@handles(ActionType.SET_CAMERA_PREFERENCE)
def _set_camera_preference(state, payload, ts):
    return replace(state, config={**state.config, "camera_preference": payload.get("value")})


@handles(ActionType.SET_LAST_BACKUP)
def _set_last_backup(state, payload, ts):
    return replace(state, last_backup=payload.get("timestamp", ts))


# ------------------------- Books ------------------------- #
@handles(ActionType.ADD_BOOK)
def _add_book(state, payload, ts):
    book = _as_book(payload["book"])
    state, book = resolve_saga_for_book(state, book, ts)
    return replace(state, books=state.books + (book,))


@handles(ActionType.UPDATE_BOOK)
def _update_book(state, payload, ts):
    updates = payload.get("updates") or {}

    def update(book: Book) -> Book:
        updated = book.with_updates(updates)
        if "status" in updates:
            status = parse_status(updates["status"], default=book.status)
            if status != book.status:
                updated = append_history(updated, status, updates.get("note"), ts)
        return updated

    return _map_book(state, payload.get("id"), update)


@handles(ActionType.DELETE_BOOK)
def _delete_book(state, payload, ts):
    book_id = payload.get("id")
    books = tuple(b for b in state.books if b.id != book_id)
    if len(books) == len(state.books):
        return state
    return replace(state, books=books)


@handles(ActionType.UPDATE_BOOK_IMAGE)
def _update_book_image(state, payload, ts):
    return _map_book(state, payload.get("id"),
                     lambda b: replace(b, custom_image=payload.get("custom_image")))


@handles(ActionType.CHANGE_BOOK_STATE)
def _change_book_state(state, payload, ts):
    try:
        new_status = BookStatus(payload.get("new_state"))
    except ValueError:
        logger.warning(f"Ignoring transition to unknown status {payload.get('new_state')!r}")
        return state
    return _map_book(state, payload.get("id"),
                     lambda b: append_history(b, new_status, payload.get("note"), ts))


@handles(ActionType.START_READING)
def _start_reading(state, payload, ts):
    date = payload.get("date") or ts

    def start(book: Book) -> Book:
        return replace(append_history(book, BookStatus.READING, payload.get("note"), date),
                       started_at=date)

    return _map_book(state, payload.get("id"), start)


@handles(ActionType.FINISH_READING)
def _finish_reading(state, payload, ts):
    date = payload.get("date") or ts
    rating = payload.get("rating")

    def finish(book: Book) -> Book:
        session = Reading(
            id=generate_unique_id(),
            start_date=book.started_at,
            end_date=date,
            rating=rating,
            pages_read=book.pages,
            notes=payload.get("note"),
        )
        finished = append_history(book, BookStatus.READ, payload.get("note"), date)
        return replace(
            finished,
            finished_at=date,
            rating=rating if rating is not None else book.rating,
            readings=book.readings + (session,),
        )

    return _map_book(state, payload.get("id"), finish)


@handles(ActionType.ABANDON_BOOK)
def _abandon_book(state, payload, ts):
    date = payload.get("date") or ts
    return _map_book(
        state, payload.get("id"),
        lambda b: replace(append_history(b, BookStatus.ABANDONED, payload.get("reason"), date),
                          abandoned_at=date),
    )


@handles(ActionType.BUY_BOOK)
def _buy_book(state, payload, ts):
    date = payload.get("date") or ts
    price = payload.get("price")

    def buy(book: Book) -> Book:
        bought = append_history(book, BookStatus.PURCHASED, None, date)
        return replace(bought, purchased_at=date, price=price if price is not None else book.price)

    return _map_book(state, payload.get("id"), buy)


@handles(ActionType.LOAN_BOOK)
def _loan_book(state, payload, ts):
    date = payload.get("date") or ts
    loaned_to = payload.get("loaned_to")

    def loan(book: Book) -> Book:
        loaned = append_history(book, BookStatus.LOANED, loaned_to, date)
        return replace(loaned, loaned=True, loaned_to=loaned_to, loaned_at=date)

    return _map_book(state, payload.get("id"), loan)


@handles(ActionType.RETURN_BOOK)
def _return_book(state, payload, ts):
    date = payload.get("date") or ts

    def give_back(book: Book) -> Book:
        if not book.loaned and book.status != BookStatus.LOANED:
            return book
        restored = previous_status(book, exclude=BookStatus.LOANED) or BookStatus.READ
        returned = append_history(book, restored, "returned", date)
        return replace(returned, loaned=False, loaned_to=None, loaned_at=None)

    return _map_book(state, payload.get("id"), give_back)


# ------------------------- Reading sessions ------------------------- #
@handles(ActionType.ADD_READING)
def _add_reading(state, payload, ts):
    data = payload.get("reading") or {}
    reading = data if isinstance(data, Reading) else Reading.from_dict(
        {**data, "id": data.get("id") or generate_unique_id()})
    return _map_book(state, payload.get("book_id"),
                     lambda b: replace(b, readings=b.readings + (reading,)))


@handles(ActionType.UPDATE_READING)
def _update_reading(state, payload, ts):
    reading_id = payload.get("reading_id")
    updates = {k: v for k, v in (payload.get("updates") or {}).items() if k != "id"}

    def update(book: Book) -> Book:
        if not any(r.id == reading_id for r in book.readings):
            return book
        readings = tuple(
            Reading.from_dict({**r.to_dict(), **updates}) if r.id == reading_id else r
            for r in book.readings
        )
        return replace(book, readings=readings)

    return _map_book(state, payload.get("book_id"), update)


@handles(ActionType.DELETE_READING)
def _delete_reading(state, payload, ts):
    reading_id = payload.get("reading_id")

    def delete(book: Book) -> Book:
        readings = tuple(r for r in book.readings if r.id != reading_id)
        return book if len(readings) == len(book.readings) else replace(book, readings=readings)

    return _map_book(state, payload.get("book_id"), delete)


# ------------------------- Sagas ------------------------- #
@handles(ActionType.ADD_SAGA)
def _add_saga(state, payload, ts):
    name = payload.get("name")
    if not name or state.find_saga_by_name(name) is not None:
        return state
    saga = new_saga(
        name,
        saga_id=payload.get("id"),
        timestamp=ts,
        description=payload.get("description"),
        genre=payload.get("genre"),
        author=payload.get("author"),
    )
    return replace(state, sagas=state.sagas + (saga,))


@handles(ActionType.UPDATE_SAGA)
def _update_saga(state, payload, ts):
    saga_id = payload.get("id")
    saga = state.find_saga(saga_id)
    if saga is None:
        return state
    updated = saga.with_updates(payload.get("updates") or {})
    if updated is saga:
        return state
    sagas = tuple(updated if s.id == saga_id else s for s in state.sagas)
    books = state.books
    if updated.name != saga.name:
        books = tuple(replace(b, saga_name=updated.name) if b.saga_id == saga_id else b
                      for b in state.books)
    return replace(state, sagas=sagas, books=books)


@handles(ActionType.DELETE_SAGA)
def _delete_saga(state, payload, ts):
    saga_id = payload.get("id")
    if state.find_saga(saga_id) is None:
        return state
    return replace(
        state,
        sagas=tuple(s for s in state.sagas if s.id != saga_id),
        books=tuple(replace(b, saga_id=None, saga_name=None) if b.saga_id == saga_id else b
                    for b in state.books),
    )


@handles(ActionType.ADD_BOOK_TO_SAGA)
def _add_book_to_saga(state, payload, ts):
    saga_id = payload.get("saga_id")
    return _map_book(state, payload.get("book_id"),
                     lambda b: b if b.saga_id == saga_id else replace(b, saga_id=saga_id))


@handles(ActionType.REMOVE_BOOK_FROM_SAGA)
def _remove_book_from_saga(state, payload, ts):
    return _map_book(state, payload.get("book_id"),
                     lambda b: b if b.saga_id is None else replace(b, saga_id=None))


@handles(ActionType.FIX_SAGA_DATA)
def _fix_saga_data(state, payload, ts):
    return fix_saga_data(state, ts)


@handles(ActionType.CLEAN_DUPLICATE_SAGAS)
def _clean_duplicate_sagas(state, payload, ts):
    return clean_duplicate_sagas(state)


@handles(ActionType.ADD_SAGA_NOTIFICATION)
def _add_saga_notification(state, payload, ts):
    notification = SagaNotification(id=generate_unique_id(), saga_name=payload.get("saga_name", ""),
                                    timestamp=ts)
    return replace(state, saga_notifications=state.saga_notifications + (notification,))


@handles(ActionType.REMOVE_SAGA_NOTIFICATION)
def _remove_saga_notification(state, payload, ts):
    notification_id = payload.get("id")
    return replace(state, saga_notifications=tuple(
        n for n in state.saga_notifications if n.id != notification_id))


# ------------------------- Scan / search logs ------------------------- #
@handles(ActionType.ADD_SCAN_HISTORY)
def _add_scan_history(state, payload, ts):
    record = payload.get("record")
    if not isinstance(record, ScanRecord):
        record = ScanRecord.from_dict(record or {})
    return replace(state, scan_history=(record,) + state.scan_history)


@handles(ActionType.CLEAR_SCAN_HISTORY)
def _clear_scan_history(state, payload, ts):
    return replace(state, scan_history=())


@handles(ActionType.ADD_SEARCH_HISTORY)
def _add_search_history(state, payload, ts):
    term = payload.get("term")
    if not term:
        return state
    rest = tuple(t for t in state.search_history if t != term)
    return replace(state, search_history=((term,) + rest)[:SEARCH_HISTORY_LIMIT])


@handles(ActionType.CLEAR_SEARCH_HISTORY)
def _clear_search_history(state, payload, ts):
    return replace(state, search_history=())


# ------------------------- Bulk import ------------------------- #
@handles(ActionType.IMPORT_DATA)
def _import_data(state, payload, ts):
    """Field-by-field fallback: a field absent (or None) in the payload keeps its current value."""
    def pick(key: str, current: Any, convert: Callable[[Any], Any]) -> Any:
        value = payload.get(key)
        return current if value is None else convert(value)

    config = state.config
    if payload.get("config") is not None:
        config = {**state.config, **payload["config"]}

    return replace(
        state,
        books=pick("books", state.books, lambda v: tuple(_as_book(b) for b in v)),
        sagas=pick("sagas", state.sagas,
                   lambda v: tuple(s if isinstance(s, Saga) else Saga.from_dict(s) for s in v)),
        config=config,
        scan_history=pick("scan_history", state.scan_history,
                          lambda v: tuple(r if isinstance(r, ScanRecord) else ScanRecord.from_dict(r)
                                          for r in v)),
        search_history=pick("search_history", state.search_history, tuple),
        current_points=pick("current_points", state.current_points, lambda v: max(0, int(v))),
        total_earned=pick("total_earned", state.total_earned, int),
        books_purchased_with_points=pick("books_purchased_with_points",
                                         state.books_purchased_with_points, int),
        last_backup=pick("last_backup", state.last_backup, int),
    )


# ------------------------- Points ------------------------- #
@handles(ActionType.EARN_POINTS)
def _earn_points(state, payload, ts):
    ledger = points.earn(points.ledger_of(state), payload.get("amount", 0))
    return points.with_ledger(state, ledger)


@handles(ActionType.SPEND_POINTS)
def _spend_points(state, payload, ts):
    ledger = points.spend(points.ledger_of(state), payload.get("amount", 0))
    return points.with_ledger(state, ledger)


@handles(ActionType.PURCHASE_WITH_POINTS)
def _purchase_with_points(state, payload, ts):
    ledger = points.purchase_with_points(points.ledger_of(state), state.purchase_cost)
    return points.with_ledger(state, ledger)


@handles(ActionType.RESET_POINTS)
def _reset_points(state, payload, ts):
    return points.with_ledger(state, points.reset(points.ledger_of(state)))
