import pytest

from booktracker.book import Book, BookFormat, BookStatus
from booktracker.ids import generate_batch_ids, generate_unique_id
from booktracker.models import LibraryState, SagaNotification
from booktracker.validators import ISBNValidator, TextValidator


def test_book_from_dict_normalizes_store_quirks():
    book = Book.from_dict({
        "id": "42",
        "title": "  Elantris ",
        "status": "on-fire",
        "categories": '["Fantasy", "Standalone"]',
        "format": "audiobook",
        "unknown_field": 1,
    })
    assert book.id == 42
    assert book.title == "Elantris"
    assert book.status == BookStatus.TBR
    assert book.categories == ("Fantasy", "Standalone")
    assert book.format == BookFormat.AUDIOBOOK


def test_book_from_dict_requires_title():
    with pytest.raises(ValueError):
        Book.from_dict({"id": 1, "title": ""})


def test_book_dict_round_trip():
    book = Book.create("Warbreaker", BookStatus.WISHLIST, author="Sanderson", pages=592,
                       categories=["Fantasy"], thumbnail="http://img")
    assert Book.from_dict(book.to_dict()) == book


def test_custom_image_wins_over_thumbnail():
    book = Book.create("X", thumbnail="http://thumb")
    assert book.cover == "http://thumb"
    assert book.with_updates({"custom_image": "data:x"}).cover == "data:x"


def test_snapshot_excludes_notifications():
    state = LibraryState(
        books=(Book.create("X", id=1),),
        saga_notifications=(SagaNotification(id=1, saga_name="S", timestamp=1),),
    )
    snapshot = state.to_snapshot()
    assert "saga_notifications" not in snapshot
    restored = LibraryState.from_snapshot(snapshot)
    assert restored.books == state.books
    assert restored.saga_notifications == ()


def test_ids_are_unique():
    ids = generate_batch_ids(500) + [generate_unique_id()]
    assert len(set(ids)) == len(ids)


@pytest.mark.parametrize("isbn,valid", [
    ("978-0-7653-1178-8", True),
    ("0306406152", True),
    ("080442957X", True),
    ("0-8044-2957-x", True),
    ("9780765311789", False),
    ("12345", False),
    (None, False),
])
def test_isbn_validation(isbn, valid):
    assert ISBNValidator.is_valid_isbn(isbn) is valid


def test_text_validation():
    assert TextValidator.sanitize_text("  <b>Mistborn</b> ") == "Mistborn"
    assert TextValidator.validate_title("   ") is False
    assert TextValidator.validate_rating(5) is True
    assert TextValidator.validate_rating(6) is False
