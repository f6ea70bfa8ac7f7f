"""Read-only library statistics derived from a ``LibraryState``."""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from booktracker.book import BookFormat, BookStatus
from booktracker.history import last_occurrence
from booktracker.models import LibraryState

MS_PER_DAY = 1000 * 60 * 60 * 24


@dataclass(frozen=True)
class LibraryStats:
    total_books: int
    by_status: Dict[str, int]
    wishlist: int
    loaned: int
    pages_read: int
    reading_progress: float
    average_rating: float
    average_pages: float
    collection_value: float
    pages_per_day: float
    by_format: Dict[str, int]
    top_authors: List[Tuple[str, int]]
    top_genres: List[Tuple[str, int]]
    sagas_complete: int
    sagas_active: int
    yearly_goal: int
    read_this_year: int
    yearly_goal_progress: float
    current_points: int
    total_earned: int
    books_purchased_with_points: int

    def to_dict(self) -> dict:
        return asdict(self)


def _year_of(timestamp_ms: Optional[int]) -> Optional[int]:
    if not timestamp_ms:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).year


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def compute_statistics(state: LibraryState, year: Optional[int] = None, top: int = 5) -> LibraryStats:
    """Summarize the library. Wishlist books are counted apart from the collection."""
    year = year or datetime.now(timezone.utc).year
    owned = [b for b in state.books if b.status != BookStatus.WISHLIST]
    read = [b for b in owned if b.status == BookStatus.READ]

    by_status = Counter(b.status.value for b in owned)
    for status in BookStatus:
        if status != BookStatus.WISHLIST:
            by_status.setdefault(status.value, 0)

    speeds = []
    for book in read:
        if book.started_at and book.finished_at and book.pages:
            days = max((book.finished_at - book.started_at) / MS_PER_DAY, 1)
            speeds.append(book.pages / days)

    read_this_year = 0
    for book in read:
        finished = book.finished_at
        if finished is None:
            entry = last_occurrence(book, BookStatus.READ)
            finished = entry.timestamp if entry else None
        if _year_of(finished) == year:
            read_this_year += 1

    goal = int(state.config.get("yearly_reading_goal") or 0)
    return LibraryStats(
        total_books=len(owned),
        by_status=dict(by_status),
        wishlist=len(state.books) - len(owned),
        loaned=sum(1 for b in owned if b.loaned),
        pages_read=sum(b.pages or 0 for b in read),
        reading_progress=round(len(read) / len(owned) * 100, 1) if owned else 0.0,
        average_rating=_mean([b.rating for b in state.books if b.rating]),
        average_pages=_mean([b.pages for b in state.books if b.pages]),
        collection_value=round(sum(b.price or 0 for b in owned), 2),
        pages_per_day=_mean(speeds),
        by_format=dict(Counter((b.format or BookFormat.PHYSICAL).value for b in state.books)),
        top_authors=Counter(b.author for b in read if b.author).most_common(top),
        top_genres=Counter(b.genre for b in read if b.genre).most_common(top),
        sagas_complete=sum(1 for s in state.sagas if s.is_complete),
        sagas_active=sum(1 for s in state.sagas if not s.is_complete),
        yearly_goal=goal,
        read_this_year=read_this_year,
        yearly_goal_progress=round(read_this_year / goal * 100, 1) if goal else 0.0,
        current_points=state.current_points,
        total_earned=state.total_earned,
        books_purchased_with_points=state.books_purchased_with_points,
    )
