from booktracker.book import Book, BookStatus
from booktracker.history import (
    append_history,
    first_occurrence,
    last_occurrence,
    previous_status,
    status_message,
)

TS = 1_700_000_000_000


def test_status_messages():
    assert status_message(BookStatus.READ) == "marked as read"
    assert status_message("wishlist", "gift idea") == "added to wishlist - gift idea"


def test_create_starts_with_one_entry():
    book = Book.create("Piranesi", timestamp=TS)
    assert len(book.status_history) == 1
    entry = book.status_history[0]
    assert (entry.status, entry.timestamp, entry.note) == (BookStatus.TBR, TS, "added to reading list")


def test_append_adds_exactly_one_entry_and_keeps_the_rest():
    book = Book.create("Piranesi", timestamp=TS)
    updated = append_history(book, BookStatus.READING, timestamp=TS + 1)

    assert updated.status == BookStatus.READING
    assert updated.status_history[:1] == book.status_history
    assert len(updated.status_history) == 2
    assert book.status == BookStatus.TBR


def test_occurrence_queries():
    book = Book.create("Piranesi", timestamp=TS)
    for i, status in enumerate([BookStatus.READING, BookStatus.TBR, BookStatus.READING], 1):
        book = append_history(book, status, timestamp=TS + i)

    assert first_occurrence(book, "reading").timestamp == TS + 1
    assert last_occurrence(book, BookStatus.READING).timestamp == TS + 3
    assert first_occurrence(book, BookStatus.READ) is None


def test_previous_status_skips_excluded():
    book = Book.create("Piranesi", BookStatus.READ, timestamp=TS)
    book = append_history(book, BookStatus.LOANED, timestamp=TS + 1)
    assert previous_status(book, exclude=BookStatus.LOANED) == BookStatus.READ
