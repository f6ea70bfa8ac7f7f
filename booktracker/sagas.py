"""Saga aggregation.

Saga ``count`` and ``is_complete`` are never written by actions; they are
derived here from the book collection after every book- or saga-affecting
dispatch. All functions are pure and idempotent, so the reducer can call
them redundantly.
"""
from __future__ import annotations

from dataclasses import replace
from typing import AbstractSet, Iterable, Optional

from booktracker.book import Book, BookStatus
from booktracker.ids import generate_unique_id, now_ms
from booktracker.models import LibraryState, Saga


def recompute_sagas(state: LibraryState, timestamp: Optional[int] = None) -> LibraryState:
    """Recompute each saga's book count and completion flag.

    A saga is complete iff it has at least one linked book and every linked
    book is read. O(sagas x books), fine at personal-library scale.
    """
    if not state.sagas:
        return state

    updated = []
    changed = False
    for saga in state.sagas:
        linked = [b for b in state.books if b.saga_id == saga.id]
        count = len(linked)
        is_complete = count > 0 and all(b.status == BookStatus.READ for b in linked)

        completed_at = saga.completed_at
        if is_complete and not saga.is_complete:
            completed_at = timestamp if timestamp is not None else now_ms()
        elif not is_complete:
            completed_at = None

        if (count, is_complete, completed_at) != (saga.count, saga.is_complete, saga.completed_at):
            saga = replace(saga, count=count, is_complete=is_complete, completed_at=completed_at)
            changed = True
        updated.append(saga)

    return replace(state, sagas=tuple(updated)) if changed else state


def prune_orphan_sagas(state: LibraryState, keep: AbstractSet[int] = frozenset()) -> LibraryState:
    """Drop sagas no book references, except the ids in ``keep``."""
    in_use = {b.saga_id for b in state.books if b.saga_id is not None} | set(keep)
    kept = tuple(s for s in state.sagas if s.id in in_use)
    if len(kept) == len(state.sagas):
        return state
    return replace(state, sagas=kept)


def newly_completed(before: Iterable[Saga], after: Iterable[Saga]) -> list[Saga]:
    """Sagas that were present and incomplete in ``before`` and are complete in ``after``."""
    was_incomplete = {s.id for s in before if not s.is_complete}
    return [s for s in after if s.is_complete and s.id in was_incomplete]


def new_saga(name: str, *, saga_id: Optional[int] = None, timestamp: Optional[int] = None,
             **attrs) -> Saga:
    return Saga(
        id=saga_id if saga_id is not None else generate_unique_id(),
        name=name,
        created_at=timestamp if timestamp is not None else now_ms(),
        description=attrs.get("description"),
        genre=attrs.get("genre"),
        author=attrs.get("author"),
    )


def resolve_saga_for_book(state: LibraryState, book: Book,
                          timestamp: Optional[int] = None) -> tuple[LibraryState, Book]:
    """Link a book being added to its saga.

    A known ``saga_id`` refreshes the cached ``saga_name``. A ``saga_name``
    without an id links to the saga with exactly that name, creating it when
    none exists. A stale ``saga_id`` with a name relinks to the saga of that
    name, or creates the saga under the book's id when the name is new.
    """
    if book.saga_id is not None:
        saga = state.find_saga(book.saga_id)
        if saga is not None:
            if book.saga_name != saga.name:
                book = replace(book, saga_name=saga.name)
            return state, book
        if not book.saga_name:
            return state, book
        saga = state.find_saga_by_name(book.saga_name)
        if saga is not None:
            return state, replace(book, saga_id=saga.id)
        saga = new_saga(book.saga_name, saga_id=book.saga_id, timestamp=timestamp)
        return replace(state, sagas=state.sagas + (saga,)), book

    if not book.saga_name:
        return state, book

    saga = state.find_saga_by_name(book.saga_name)
    if saga is None:
        saga = new_saga(book.saga_name, timestamp=timestamp)
        state = replace(state, sagas=state.sagas + (saga,))
    return state, replace(book, saga_id=saga.id)


def fix_saga_data(state: LibraryState, timestamp: Optional[int] = None) -> LibraryState:
    """Re-link every book that carries a saga name to the saga of that name.

    Names unknown to the saga list become new sagas, reusing the book's own
    ``saga_id`` when it has one.
    """
    name_to_id = {s.name: s.id for s in state.sagas}
    created: list[Saga] = []
    for book in state.books:
        if book.saga_name and book.saga_name not in name_to_id:
            saga = new_saga(book.saga_name, saga_id=book.saga_id, timestamp=timestamp)
            created.append(saga)
            name_to_id[book.saga_name] = saga.id

    books = tuple(
        replace(b, saga_id=name_to_id[b.saga_name])
        if b.saga_name and b.saga_id != name_to_id[b.saga_name] else b
        for b in state.books
    )
    return replace(state, books=books, sagas=state.sagas + tuple(created))


def clean_duplicate_sagas(state: LibraryState) -> LibraryState:
    """Merge sagas sharing a name onto the oldest (lowest id) one."""
    keep: dict[str, Saga] = {}
    for saga in sorted(state.sagas, key=lambda s: s.id):
        keep.setdefault(saga.name, saga)
    if len(keep) == len(state.sagas):
        return state

    remap = {s.id: keep[s.name].id for s in state.sagas if keep[s.name].id != s.id}
    books = tuple(
        replace(b, saga_id=remap[b.saga_id]) if b.saga_id in remap else b
        for b in state.books
    )
    kept_ids = {s.id for s in keep.values()}
    sagas = tuple(s for s in state.sagas if s.id in kept_ids)
    return replace(state, books=books, sagas=sagas)
