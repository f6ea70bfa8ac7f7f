from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from booktracker.book import Book
from booktracker.ids import generate_unique_id, now_ms

DEFAULT_CONFIG: dict[str, Any] = {
    "auto_save_enabled": True,
    "search_history_enabled": True,
    "scan_history_enabled": True,
    "statistics_enabled": True,
    "export_format": "json",
    "yearly_reading_goal": 12,
    "yearly_pages_goal": 4000,
    "reading_reminder": True,
    "saga_notifications": True,
    "goal_notifications": True,
    "loan_notifications": True,
    "flashlight_enabled": False,
    "zoom_level": 1,
    # Points economy
    "points_enabled": True,
    "points_per_book": 10,
    "points_per_saga": 50,
    "points_per_page": 1,
    "points_to_purchase": 25,
}

# Cost used when the config carries no purchase price
DEFAULT_PURCHASE_COST = 25


@dataclass(frozen=True)
class Saga:
    """A named series of books. ``count`` and ``is_complete`` are derived."""
    id: int
    name: str
    count: int = 0
    is_complete: bool = False
    description: Optional[str] = None
    genre: Optional[str] = None
    author: Optional[str] = None
    created_at: Optional[int] = None
    completed_at: Optional[int] = None

    def with_updates(self, updates: Mapping[str, Any]) -> "Saga":
        # Derived fields are owned by the saga aggregator
        allowed = {"name", "description", "genre", "author"}
        changes = {k: v for k, v in updates.items() if k in allowed}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "count": self.count,
            "is_complete": self.is_complete,
            "description": self.description,
            "genre": self.genre,
            "author": self.author,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Saga":
        return Saga(
            id=int(data["id"]),
            name=str(data["name"]),
            count=int(data.get("count") or 0),
            is_complete=bool(data.get("is_complete", False)),
            description=data.get("description"),
            genre=data.get("genre"),
            author=data.get("author"),
            created_at=data.get("created_at"),
            completed_at=data.get("completed_at"),
        )


@dataclass(frozen=True)
class ScanRecord:
    """One barcode/ISBN lookup attempt."""
    id: int
    isbn: str
    timestamp: int
    success: bool
    title: Optional[str] = None
    author: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "timestamp": self.timestamp,
            "success": self.success,
            "error_message": self.error_message,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "ScanRecord":
        return ScanRecord(
            id=int(data.get("id") or generate_unique_id()),
            isbn=str(data.get("isbn") or ""),
            timestamp=int(data.get("timestamp") or now_ms()),
            success=bool(data.get("success", False)),
            title=data.get("title"),
            author=data.get("author"),
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class SagaNotification:
    id: int
    saga_name: str
    timestamp: int


@dataclass(frozen=True)
class LibraryState:
    """The whole in-memory library. Only the reducer produces new instances."""
    config: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_CONFIG))
    books: tuple[Book, ...] = ()
    sagas: tuple[Saga, ...] = ()
    scan_history: tuple[ScanRecord, ...] = ()
    search_history: tuple[str, ...] = ()
    current_points: int = 0
    total_earned: int = 0
    books_purchased_with_points: int = 0
    saga_notifications: tuple[SagaNotification, ...] = ()
    last_backup: Optional[int] = None

    def find_book(self, book_id: int) -> Optional[Book]:
        return next((b for b in self.books if b.id == book_id), None)

    def find_saga(self, saga_id: int) -> Optional[Saga]:
        return next((s for s in self.sagas if s.id == saga_id), None)

    def find_saga_by_name(self, name: str) -> Optional[Saga]:
        return next((s for s in self.sagas if s.name == name), None)

    @property
    def purchase_cost(self) -> int:
        return self.config.get("points_to_purchase") or DEFAULT_PURCHASE_COST

    def to_snapshot(self) -> dict:
        """Full JSON-ready snapshot as pushed to the remote store."""
        return {
            "books": [b.to_dict() for b in self.books],
            "sagas": [s.to_dict() for s in self.sagas],
            "config": dict(self.config),
            "scan_history": [r.to_dict() for r in self.scan_history],
            "search_history": list(self.search_history),
            "current_points": self.current_points,
            "total_earned": self.total_earned,
            "books_purchased_with_points": self.books_purchased_with_points,
            "last_backup": self.last_backup,
        }

    @staticmethod
    def from_snapshot(data: Mapping[str, Any]) -> "LibraryState":
        return LibraryState(
            config={**DEFAULT_CONFIG, **(data.get("config") or {})},
            books=tuple(Book.from_dict(b) for b in data.get("books") or ()),
            sagas=tuple(Saga.from_dict(s) for s in data.get("sagas") or ()),
            scan_history=tuple(ScanRecord.from_dict(r) for r in data.get("scan_history") or ()),
            search_history=tuple(data.get("search_history") or ()),
            current_points=max(0, int(data.get("current_points") or 0)),
            total_earned=int(data.get("total_earned") or 0),
            books_purchased_with_points=int(data.get("books_purchased_with_points") or 0),
            last_backup=data.get("last_backup"),
        )
