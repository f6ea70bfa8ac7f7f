from booktracker.book import Book, BookStatus
from booktracker.models import LibraryState, Saga
from booktracker.sagas import (
    clean_duplicate_sagas,
    fix_saga_data,
    newly_completed,
    prune_orphan_sagas,
    recompute_sagas,
    resolve_saga_for_book,
)

TS = 1_700_000_000_000


def _state(*books, sagas=()):
    return LibraryState(books=tuple(books), sagas=tuple(sagas))


def test_count_matches_linked_books():
    state = _state(
        Book.create("One", id=1, saga_id=1),
        Book.create("Two", id=2, saga_id=1),
        Book.create("Other", id=3, saga_id=2),
        sagas=[Saga(1, "Trilogy"), Saga(2, "Duology")],
    )
    state = recompute_sagas(state, TS)
    assert state.find_saga(1).count == 2
    assert state.find_saga(2).count == 1


def test_complete_only_when_every_book_is_read():
    state = _state(
        Book.create("One", BookStatus.READ, id=1, saga_id=1),
        Book.create("Two", BookStatus.READING, id=2, saga_id=1),
        sagas=[Saga(1, "Trilogy")],
    )
    assert recompute_sagas(state, TS).find_saga(1).is_complete is False

    state = _state(
        Book.create("One", BookStatus.READ, id=1, saga_id=1),
        Book.create("Two", BookStatus.READ, id=2, saga_id=1),
        sagas=[Saga(1, "Trilogy")],
    )
    saga = recompute_sagas(state, TS).find_saga(1)
    assert saga.is_complete is True
    assert saga.completed_at == TS


def test_empty_saga_is_never_complete():
    state = recompute_sagas(_state(sagas=[Saga(1, "Empty", is_complete=True, count=3)]), TS)
    saga = state.find_saga(1)
    assert (saga.count, saga.is_complete, saga.completed_at) == (0, False, None)


def test_recompute_is_idempotent():
    state = _state(Book.create("One", BookStatus.READ, id=1, saga_id=1), sagas=[Saga(1, "S")])
    once = recompute_sagas(state, TS)
    assert recompute_sagas(once, TS + 1000) is once


def test_prune_drops_unreferenced_sagas_except_kept():
    state = _state(Book.create("One", id=1, saga_id=1), sagas=[Saga(1, "Used"), Saga(2, "Orphan"), Saga(3, "New")])
    pruned = prune_orphan_sagas(state, keep={3})
    assert [s.id for s in pruned.sagas] == [1, 3]
    assert prune_orphan_sagas(pruned, keep={3}) is pruned


def test_newly_completed_ignores_sagas_that_were_already_complete():
    before = [Saga(1, "A"), Saga(2, "B", is_complete=True)]
    after = [Saga(1, "A", is_complete=True), Saga(2, "B", is_complete=True), Saga(3, "C", is_complete=True)]
    assert [s.id for s in newly_completed(before, after)] == [1]


def test_resolve_links_by_name_and_refreshes_name_cache():
    state = _state(sagas=[Saga(1, "Expanse")])

    _, by_name = resolve_saga_for_book(state, Book.create("Leviathan Wakes", id=1, saga_name="Expanse"))
    assert by_name.saga_id == 1

    _, by_id = resolve_saga_for_book(state, Book.create("Caliban's War", id=2, saga_id=1, saga_name="old"))
    assert by_id.saga_name == "Expanse"


def test_resolve_creates_saga_for_unknown_id_with_name():
    state, book = resolve_saga_for_book(_state(), Book.create("X", id=1, saga_id=77, saga_name="Seventy"), TS)
    assert state.find_saga(77).name == "Seventy"
    assert book.saga_id == 77


def test_resolve_stale_id_relinks_to_saga_with_same_name():
    state = _state(sagas=[Saga(1, "Dune")])
    state, book = resolve_saga_for_book(state, Book.create("Messiah", id=2, saga_id=99, saga_name="Dune"), TS)
    assert book.saga_id == 1
    assert [s.name for s in state.sagas] == ["Dune"]


def test_fix_saga_data_relinks_by_name():
    state = _state(
        Book.create("Dune", id=1, saga_name="Dune"),
        Book.create("Dune Messiah", id=2, saga_id=99, saga_name="Dune"),
    )
    fixed = fix_saga_data(state, TS)
    assert len(fixed.sagas) == 1
    saga_id = fixed.sagas[0].id
    assert {b.saga_id for b in fixed.books} == {saga_id}


def test_clean_duplicate_sagas_merges_onto_lowest_id():
    state = _state(
        Book.create("One", id=1, saga_id=5),
        Book.create("Two", id=2, saga_id=3),
        sagas=[Saga(5, "Witcher"), Saga(3, "Witcher"), Saga(4, "Other")],
    )
    cleaned = clean_duplicate_sagas(state)
    assert sorted(s.id for s in cleaned.sagas) == [3, 4]
    assert {b.saga_id for b in cleaned.books} == {3}
