from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Mapping, Optional

from booktracker.ids import generate_unique_id, now_ms

logger = logging.getLogger(__name__)


class BookStatus(str, Enum):
    TBR = "tbr"
    READING = "reading"
    READ = "read"
    ABANDONED = "abandoned"
    WISHLIST = "wishlist"
    PURCHASED = "purchased"
    LOANED = "loaned"


class BookFormat(str, Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"
    AUDIOBOOK = "audiobook"


def _coerce_list(value: Any) -> tuple:
    """Normalize list-ish values (JSON strings, lists, single values) to a tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return (value,) if value else ()
    if isinstance(value, (list, tuple, set)):
        return tuple(value)
    return (value,)


def parse_status(value: Any, default: BookStatus = BookStatus.TBR) -> BookStatus:
    if isinstance(value, BookStatus):
        return value
    try:
        return BookStatus(value)
    except ValueError:
        logger.warning(f"Unknown book status {value!r}, using {default.value}")
        return default


@dataclass(frozen=True)
class StatusEntry:
    """One immutable entry of a book's status history."""
    status: BookStatus
    timestamp: int
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {"status": self.status.value, "timestamp": self.timestamp, "note": self.note}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "StatusEntry":
        return StatusEntry(
            status=parse_status(data.get("status")),
            timestamp=int(data.get("timestamp") or now_ms()),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class Reading:
    """A single reading session. A book may have several (re-reads)."""
    id: int
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    rating: Optional[float] = None
    review: Optional[str] = None
    pages_read: Optional[int] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "rating": self.rating,
            "review": self.review,
            "pages_read": self.pages_read,
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Reading":
        return Reading(
            id=int(data.get("id") or generate_unique_id()),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            rating=data.get("rating"),
            review=data.get("review"),
            pages_read=data.get("pages_read"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class Book:
    """A single title tracked in the user's library.

    Instances are immutable; every change produces a new ``Book`` through
    :meth:`with_updates` or the status history tracker.
    """
    id: int
    title: str
    status: BookStatus = BookStatus.TBR
    status_history: tuple[StatusEntry, ...] = ()

    author: Optional[str] = None
    pages: Optional[int] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    published_year: Optional[int] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    categories: tuple[str, ...] = ()
    language: Optional[str] = None
    rating: Optional[float] = None
    format: Optional[BookFormat] = None
    location: Optional[str] = None
    price: Optional[float] = None
    notes: Optional[str] = None

    # Saga linkage; saga_name is a display cache of the linked saga's name
    saga_id: Optional[int] = None
    saga_name: Optional[str] = None
    reading_order: Optional[int] = None

    # Loan pair
    loaned: bool = False
    loaned_to: Optional[str] = None

    readings: tuple[Reading, ...] = ()
    pages_read: Optional[int] = None

    # Images: a user-uploaded data URI beats any fetched thumbnail
    thumbnail: Optional[str] = None
    custom_image: Optional[str] = None

    # Lifecycle dates (epoch ms)
    added_at: Optional[int] = None
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    abandoned_at: Optional[int] = None
    purchased_at: Optional[int] = None
    loaned_at: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        by = f" by {self.author}" if self.author else ""
        return f"{self.title}{by} [{self.status.value}]"

    @property
    def cover(self) -> Optional[str]:
        return self.custom_image or self.thumbnail

    @classmethod
    def create(cls, title: str, status: BookStatus | str = BookStatus.TBR, *,
               id: Optional[int] = None, timestamp: Optional[int] = None,
               note: Optional[str] = None, **attrs: Any) -> "Book":
        """Build a new book with a generated id and its creation history entry."""
        from booktracker.history import status_message

        ts = timestamp if timestamp is not None else now_ms()
        status = parse_status(status)
        entry = StatusEntry(status=status, timestamp=ts, note=status_message(status, note))
        book = cls(
            id=id if id is not None else generate_unique_id(),
            title=title.strip(),
            status=status,
            status_history=(entry,),
            added_at=ts,
        )
        return book.with_updates(attrs) if attrs else book

    def with_updates(self, updates: Mapping[str, Any]) -> "Book":
        """Shallow-merge a patch of field values.

        Unknown keys are ignored. ``id``, ``status`` and ``status_history``
        are not patchable here; status changes go through the history tracker.
        """
        changes = {}
        for key, value in updates.items():
            if key not in PATCHABLE_FIELDS:
                continue
            changes[key] = _normalize_field(key, value)
        if not changes:
            return self
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "pages": self.pages,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "published_year": self.published_year,
            "description": self.description,
            "genre": self.genre,
            "categories": list(self.categories),
            "language": self.language,
            "rating": self.rating,
            "format": self.format.value if self.format else None,
            "location": self.location,
            "price": self.price,
            "notes": self.notes,
            "status": self.status.value,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "saga_id": self.saga_id,
            "saga_name": self.saga_name,
            "reading_order": self.reading_order,
            "loaned": self.loaned,
            "loaned_to": self.loaned_to,
            "readings": [reading.to_dict() for reading in self.readings],
            "pages_read": self.pages_read,
            "thumbnail": self.thumbnail,
            "custom_image": self.custom_image,
            "added_at": self.added_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "abandoned_at": self.abandoned_at,
            "purchased_at": self.purchased_at,
            "loaned_at": self.loaned_at,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Book":
        if not data.get("title"):
            raise ValueError("Book title cannot be empty")
        status = parse_status(data.get("status"))
        history = tuple(StatusEntry.from_dict(e) for e in _coerce_list(data.get("status_history")))
        book = Book(
            id=int(data["id"]) if data.get("id") is not None else generate_unique_id(),
            title=str(data["title"]).strip(),
            status=status,
            status_history=history,
        )
        return book.with_updates({k: v for k, v in data.items() if k in PATCHABLE_FIELDS})


def _normalize_field(key: str, value: Any) -> Any:
    if key == "categories":
        return tuple(str(c) for c in _coerce_list(value))
    if key == "readings":
        return tuple(r if isinstance(r, Reading) else Reading.from_dict(r) for r in _coerce_list(value))
    if key == "format" and value is not None and not isinstance(value, BookFormat):
        try:
            return BookFormat(value)
        except ValueError:
            logger.warning(f"Unknown book format {value!r}, ignoring")
            return None
    if key == "loaned":
        return bool(value)
    if key == "title" and isinstance(value, str):
        return value.strip()
    return value


PROTECTED_FIELDS = frozenset({"id", "status", "status_history"})
PATCHABLE_FIELDS = frozenset(f.name for f in fields(Book)) - PROTECTED_FIELDS
