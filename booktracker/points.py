"""Points ledger operations.

The ledger never rejects an operation. Spending more than the balance
clamps it at zero; callers that need strict accounting (e.g. a purchase
button) must check :func:`can_afford` before dispatching.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from booktracker.book import Book
from booktracker.models import LibraryState


@dataclass(frozen=True)
class PointsLedger:
    current_points: int = 0
    total_earned: int = 0
    books_purchased_with_points: int = 0


def ledger_of(state: LibraryState) -> PointsLedger:
    return PointsLedger(
        current_points=state.current_points,
        total_earned=state.total_earned,
        books_purchased_with_points=state.books_purchased_with_points,
    )


def with_ledger(state: LibraryState, ledger: PointsLedger) -> LibraryState:
    return replace(
        state,
        current_points=ledger.current_points,
        total_earned=ledger.total_earned,
        books_purchased_with_points=ledger.books_purchased_with_points,
    )


def earn(ledger: PointsLedger, amount: int) -> PointsLedger:
    amount = max(0, amount)
    return replace(
        ledger,
        current_points=ledger.current_points + amount,
        total_earned=ledger.total_earned + amount,
    )


def spend(ledger: PointsLedger, amount: int) -> PointsLedger:
    amount = max(0, amount)
    return replace(ledger, current_points=max(0, ledger.current_points - amount))


def purchase_with_points(ledger: PointsLedger, cost: int) -> PointsLedger:
    spent = spend(ledger, cost)
    return replace(spent, books_purchased_with_points=spent.books_purchased_with_points + 1)


def reset(ledger: PointsLedger) -> PointsLedger:
    return PointsLedger()


def can_afford(state: LibraryState, cost: int | None = None) -> bool:
    return state.current_points >= (cost if cost is not None else state.purchase_cost)


def reading_reward(book: Book, config: Mapping[str, Any]) -> int:
    """Points for finishing ``book``: a flat per-book amount plus a per-page amount."""
    if not config.get("points_enabled", True):
        return 0
    per_book = config.get("points_per_book") or 0
    per_page = config.get("points_per_page") or 0
    return per_book + (book.pages or 0) * per_page


def saga_reward(config: Mapping[str, Any]) -> int:
    if not config.get("points_enabled", True):
        return 0
    return config.get("points_per_saga") or 0
