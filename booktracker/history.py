"""Status history tracking.

Every status transition of a book goes through :func:`append_history`, which
returns a new ``Book`` with the status replaced and exactly one entry
appended. Existing entries are never edited, reordered or removed, so the
history is the book's permanent audit trail and the only source for "when
did this status first/last occur" queries.
"""
from dataclasses import replace
from typing import Optional

from booktracker.book import Book, BookStatus, StatusEntry, parse_status
from booktracker.ids import now_ms

STATUS_MESSAGES = {
    BookStatus.TBR: "added to reading list",
    BookStatus.READING: "started reading",
    BookStatus.READ: "marked as read",
    BookStatus.ABANDONED: "marked as abandoned",
    BookStatus.WISHLIST: "added to wishlist",
    BookStatus.PURCHASED: "marked as purchased",
    BookStatus.LOANED: "marked as loaned",
}


def status_message(status: BookStatus | str, note: Optional[str] = None) -> str:
    """Human-readable message for a transition, with the caller's note appended."""
    message = STATUS_MESSAGES[parse_status(status)]
    if note:
        message += f" - {note}"
    return message


def append_history(book: Book, new_status: BookStatus | str, note: Optional[str] = None,
                   timestamp: Optional[int] = None) -> Book:
    status = parse_status(new_status)
    entry = StatusEntry(
        status=status,
        timestamp=timestamp if timestamp is not None else now_ms(),
        note=status_message(status, note),
    )
    return replace(book, status=status, status_history=book.status_history + (entry,))


def first_occurrence(book: Book, status: BookStatus | str) -> Optional[StatusEntry]:
    status = parse_status(status)
    return next((e for e in book.status_history if e.status == status), None)


def last_occurrence(book: Book, status: BookStatus | str) -> Optional[StatusEntry]:
    status = parse_status(status)
    return next((e for e in reversed(book.status_history) if e.status == status), None)


def previous_status(book: Book, exclude: BookStatus) -> Optional[BookStatus]:
    """Most recent status in the history other than ``exclude``."""
    for entry in reversed(book.status_history):
        if entry.status != exclude:
            return entry.status
    return None
