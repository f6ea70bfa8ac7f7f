import re
from typing import Optional

_ISBN10 = re.compile(r"^\d{9}[\dX]$")
_ISBN13 = re.compile(r"^97[89]\d{10}$")


def _isbn10_ok(digits: str) -> bool:
    values = [10 if ch == "X" else int(ch) for ch in digits]
    return sum(weight * value for weight, value in zip(range(10, 0, -1), values)) % 11 == 0


def _isbn13_ok(digits: str) -> bool:
    weighted = sum(int(ch) * (3 if pos % 2 else 1) for pos, ch in enumerate(digits))
    return weighted % 10 == 0


class ISBNValidator:
    """Checks ISBNs typed or scanned by the user before they reach an action.

    The reducer stores whatever it is given; validation happens at the edges.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        """Strip hyphens and spaces, upper-casing a trailing X."""
        return re.sub(r"[^0-9X]", "", (raw or "").upper())

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        digits = ISBNValidator.normalize_isbn(isbn)
        if _ISBN10.match(digits):
            return _isbn10_ok(digits)
        if _ISBN13.match(digits):
            return _isbn13_ok(digits)
        return False


class TextValidator:
    """Basic text validation for user-entered book fields."""

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return title is not None and bool(title.strip())

    @staticmethod
    def validate_rating(rating: Optional[float]) -> bool:
        if rating is None:
            return True
        return 0 <= rating <= 5

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        cleaned = re.sub(r"<[^>]*>", "", text)
        return cleaned.strip()
