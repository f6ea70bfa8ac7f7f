from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from booktracker.book import Book, BookStatus
from booktracker.models import ScanRecord


class ActionType(str, Enum):
    # Config
    SET_CONFIG = "SET_CONFIG"
    SET_CAMERA_PREFERENCE = "SET_CAMERA_PREFERENCE"
    SET_LAST_BACKUP = "SET_LAST_BACKUP"

    # Books
    ADD_BOOK = "ADD_BOOK"
    UPDATE_BOOK = "UPDATE_BOOK"
    DELETE_BOOK = "DELETE_BOOK"
    UPDATE_BOOK_IMAGE = "UPDATE_BOOK_IMAGE"
    CHANGE_BOOK_STATE = "CHANGE_BOOK_STATE"
    START_READING = "START_READING"
    FINISH_READING = "FINISH_READING"
    ABANDON_BOOK = "ABANDON_BOOK"
    BUY_BOOK = "BUY_BOOK"
    LOAN_BOOK = "LOAN_BOOK"
    RETURN_BOOK = "RETURN_BOOK"

    # Reading sessions
    ADD_READING = "ADD_READING"
    UPDATE_READING = "UPDATE_READING"
    DELETE_READING = "DELETE_READING"

    # Sagas
    ADD_SAGA = "ADD_SAGA"
    UPDATE_SAGA = "UPDATE_SAGA"
    DELETE_SAGA = "DELETE_SAGA"
    ADD_BOOK_TO_SAGA = "ADD_BOOK_TO_SAGA"
    REMOVE_BOOK_FROM_SAGA = "REMOVE_BOOK_FROM_SAGA"
    FIX_SAGA_DATA = "FIX_SAGA_DATA"
    CLEAN_DUPLICATE_SAGAS = "CLEAN_DUPLICATE_SAGAS"
    ADD_SAGA_NOTIFICATION = "ADD_SAGA_NOTIFICATION"
    REMOVE_SAGA_NOTIFICATION = "REMOVE_SAGA_NOTIFICATION"

    # Scan / search logs
    ADD_SCAN_HISTORY = "ADD_SCAN_HISTORY"
    CLEAR_SCAN_HISTORY = "CLEAR_SCAN_HISTORY"
    ADD_SEARCH_HISTORY = "ADD_SEARCH_HISTORY"
    CLEAR_SEARCH_HISTORY = "CLEAR_SEARCH_HISTORY"

    # Bulk data
    IMPORT_DATA = "IMPORT_DATA"

    # Points
    EARN_POINTS = "EARN_POINTS"
    SPEND_POINTS = "SPEND_POINTS"
    PURCHASE_WITH_POINTS = "PURCHASE_WITH_POINTS"
    RESET_POINTS = "RESET_POINTS"


# Actions after which saga aggregates must be recomputed
BOOK_AFFECTING_ACTIONS = frozenset({
    ActionType.ADD_BOOK,
    ActionType.UPDATE_BOOK,
    ActionType.DELETE_BOOK,
    ActionType.CHANGE_BOOK_STATE,
    ActionType.START_READING,
    ActionType.FINISH_READING,
    ActionType.ABANDON_BOOK,
    ActionType.BUY_BOOK,
    ActionType.LOAN_BOOK,
    ActionType.RETURN_BOOK,
    ActionType.ADD_SAGA,
    ActionType.UPDATE_SAGA,
    ActionType.DELETE_SAGA,
    ActionType.ADD_BOOK_TO_SAGA,
    ActionType.REMOVE_BOOK_FROM_SAGA,
    ActionType.FIX_SAGA_DATA,
    ActionType.CLEAN_DUPLICATE_SAGAS,
    ActionType.IMPORT_DATA,
})


@dataclass(frozen=True)
class Action:
    """A state mutation request. ``type`` may be any string; unknown types are no-ops."""
    type: ActionType | str
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, type: ActionType | str, **payload: Any) -> "Action":
        return cls(type=type, payload=payload)


# ------------------------- Builders ------------------------- #
def add_book(book: Book) -> Action:
    return Action.of(ActionType.ADD_BOOK, book=book)


def update_book(book_id: int, **updates: Any) -> Action:
    return Action.of(ActionType.UPDATE_BOOK, id=book_id, updates=updates)


def delete_book(book_id: int) -> Action:
    return Action.of(ActionType.DELETE_BOOK, id=book_id)


def change_book_state(book_id: int, new_state: BookStatus | str, note: Optional[str] = None) -> Action:
    return Action.of(ActionType.CHANGE_BOOK_STATE, id=book_id, new_state=new_state, note=note)


def add_saga(name: str, **attrs: Any) -> Action:
    return Action.of(ActionType.ADD_SAGA, name=name, **attrs)


def delete_saga(saga_id: int) -> Action:
    return Action.of(ActionType.DELETE_SAGA, id=saga_id)


def add_book_to_saga(book_id: int, saga_id: int) -> Action:
    return Action.of(ActionType.ADD_BOOK_TO_SAGA, book_id=book_id, saga_id=saga_id)


def remove_book_from_saga(book_id: int, saga_id: int) -> Action:
    return Action.of(ActionType.REMOVE_BOOK_FROM_SAGA, book_id=book_id, saga_id=saga_id)


def add_scan_history(record: ScanRecord) -> Action:
    return Action.of(ActionType.ADD_SCAN_HISTORY, record=record)


def add_search_history(term: str) -> Action:
    return Action.of(ActionType.ADD_SEARCH_HISTORY, term=term)


def import_data(**payload: Any) -> Action:
    return Action(type=ActionType.IMPORT_DATA, payload=payload)


def earn_points(amount: int, reason: str = "") -> Action:
    return Action.of(ActionType.EARN_POINTS, amount=amount, reason=reason)


def spend_points(amount: int, reason: str = "") -> Action:
    return Action.of(ActionType.SPEND_POINTS, amount=amount, reason=reason)


def purchase_with_points(book_id: Optional[int] = None) -> Action:
    return Action.of(ActionType.PURCHASE_WITH_POINTS, book_id=book_id)


def reset_points() -> Action:
    return Action.of(ActionType.RESET_POINTS)
