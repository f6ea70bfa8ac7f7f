from datetime import datetime, timezone

from booktracker.book import Book, BookFormat, BookStatus
from booktracker.models import LibraryState, Saga
from booktracker.statistics import compute_statistics


def _ms(year, month=6, day=1):
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp() * 1000)


def _library():
    books = (
        Book.create("Dune", BookStatus.READ, id=1, author="Herbert", genre="SF", pages=400, rating=5,
                    price=10.0, started_at=_ms(2024, 1, 1), finished_at=_ms(2024, 1, 11), saga_id=1),
        Book.create("Messiah", BookStatus.READ, id=2, author="Herbert", genre="SF", pages=200, rating=3,
                    finished_at=_ms(2023), saga_id=1),
        Book.create("Emma", BookStatus.READING, id=3, author="Austen", format=BookFormat.DIGITAL, loaned=True),
        Book.create("Wanted", BookStatus.WISHLIST, id=4, price=30.0),
    )
    sagas = (Saga(1, "Dune", count=2, is_complete=True), Saga(2, "Other", count=1))
    return LibraryState(books=books, sagas=sagas, current_points=15,
                        config={"yearly_reading_goal": 4})


def test_counts_exclude_wishlist():
    stats = compute_statistics(_library(), year=2024)
    assert stats.total_books == 3
    assert stats.wishlist == 1
    assert stats.by_status["read"] == 2
    assert stats.by_status["abandoned"] == 0
    assert "wishlist" not in stats.by_status
    assert stats.loaned == 1


def test_reading_metrics():
    stats = compute_statistics(_library(), year=2024)
    assert stats.pages_read == 600
    assert stats.average_rating == 4.0
    assert stats.pages_per_day == 40.0
    assert stats.collection_value == 10.0
    assert stats.top_authors == [("Herbert", 2)]
    assert stats.by_format == {"physical": 3, "digital": 1}


def test_yearly_goal_uses_finish_dates():
    stats = compute_statistics(_library(), year=2024)
    assert stats.read_this_year == 1
    assert stats.yearly_goal == 4
    assert stats.yearly_goal_progress == 25.0


def test_sagas_and_points():
    stats = compute_statistics(_library(), year=2024)
    assert (stats.sagas_complete, stats.sagas_active) == (1, 1)
    assert stats.current_points == 15
    assert stats.to_dict()["total_books"] == 3


def test_empty_library():
    stats = compute_statistics(LibraryState(), year=2024)
    assert stats.total_books == 0
    assert stats.reading_progress == 0.0
    assert stats.average_rating == 0.0
