import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from booktracker import actions
from booktracker.actions import Action, ActionType
from booktracker.book import Book, BookStatus
from booktracker.config import settings
from booktracker.errors import BookTrackerError, LegacyMigrationError
from booktracker.logging_config import setup_logging
from booktracker.migration import is_legacy, load_local_state, migrate
from booktracker.models import LibraryState
from booktracker.points import can_afford, reading_reward, saga_reward
from booktracker.services.http_client import cleanup_http_client
from booktracker.services.legacy_storage import LegacyStorage
from booktracker.services.remote_store import HttpRemoteStore
from booktracker.services.sync import SyncEngine, SyncStatus
from booktracker.statistics import compute_statistics
from booktracker.store import Store
from booktracker.ui_helpers import print_list_result, print_sagas_result, print_stats_result, set_output_mode
from booktracker.validators import ISBNValidator, TextValidator

console = Console()

app = typer.Typer(help="Book Tracker CLI")

_state_file: Optional[str] = None


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"
    ),
    state_file: Optional[str] = typer.Option(
        None, "--state-file", "-f", help="Local library JSON file (default: BOOKTRACKER_STATE_FILE)"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Global options for the CLI."""
    global _state_file
    if output:
        set_output_mode(output)
    _state_file = state_file
    setup_logging(log_level)


# ------------------------- Local state ------------------------- #
def _storage() -> LegacyStorage:
    return LegacyStorage(_state_file or settings.state_file)


def _load(storage: LegacyStorage) -> Store:
    try:
        state = load_local_state(storage.read())
    except LegacyMigrationError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    return Store(state)


def _save(store: Store, storage: LegacyStorage) -> None:
    storage.write(store.get_state().to_snapshot())


def _require_book(store: Store, book_id: int) -> Book:
    book = store.get_state().find_book(book_id)
    if book is None:
        print(f"Book with id {book_id} not found.")
        raise typer.Exit(code=1)
    return book


def _collect_saga_rewards(store: Store) -> None:
    """Announce completed sagas, award their points and clear the notifications."""
    state = store.get_state()
    for notification in state.saga_notifications:
        reward = saga_reward(state.config)
        print(f"Saga complete: {notification.saga_name}" + (f" (+{reward} points)" if reward else ""))
        if reward:
            store.dispatch(actions.earn_points(reward, f"saga {notification.saga_name}"))
        store.dispatch(Action.of(ActionType.REMOVE_SAGA_NOTIFICATION, id=notification.id))


# ------------------------- Books ------------------------- #
@app.command("list")
def cli_list(status: Optional[str] = typer.Option(None, "--status", "-s", help="Only books in this status")):
    """List books in the library."""
    books = list(_load(_storage()).get_state().books)
    if status:
        books = [b for b in books if b.status.value == status]
    print_list_result(books)


@app.command("add")
def cli_add(
    title: str,
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    pages: Optional[int] = typer.Option(None, "--pages", "-p"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    status: str = typer.Option(BookStatus.TBR.value, "--status", "-s"),
    saga: Optional[str] = typer.Option(None, "--saga", help="Saga name; created when unknown"),
    order: Optional[int] = typer.Option(None, "--order", help="Reading order within the saga"),
    genre: Optional[str] = typer.Option(None, "--genre"),
):
    """Add a book by hand."""
    title = TextValidator.sanitize_text(title)
    if not TextValidator.validate_title(title):
        print("Error: title must not be empty")
        raise typer.Exit(code=1)
    if status not in {s.value for s in BookStatus}:
        print(f"Error: unknown status '{status}'")
        raise typer.Exit(code=1)
    if isbn is not None:
        if not ISBNValidator.is_valid_isbn(isbn):
            print(f"Error: invalid ISBN '{isbn}'")
            raise typer.Exit(code=1)
        isbn = ISBNValidator.normalize_isbn(isbn)

    storage = _storage()
    store = _load(storage)
    book = Book.create(title, status, author=author, pages=pages, isbn=isbn,
                       saga_name=saga, reading_order=order, genre=genre)
    store.dispatch(actions.add_book(book))
    _save(store, storage)
    by = f" by {author}" if author else ""
    print(f"Added: {book.title}{by} (id {book.id})")


@app.command("status")
def cli_status(
    book_id: int,
    new_status: str,
    note: Optional[str] = typer.Option(None, "--note", "-n"),
    rating: Optional[float] = typer.Option(None, "--rating", "-r", help="Rating 0-5 when marking read"),
    loaned_to: Optional[str] = typer.Option(None, "--to", help="Borrower when marking loaned"),
):
    """Move a book to another status."""
    if new_status not in {s.value for s in BookStatus}:
        print(f"Error: unknown status '{new_status}'")
        raise typer.Exit(code=1)
    if not TextValidator.validate_rating(rating):
        print("Error: rating must be between 0 and 5")
        raise typer.Exit(code=1)
    if new_status == BookStatus.LOANED.value and not loaned_to:
        print("Error: --to is required when marking a book loaned")
        raise typer.Exit(code=1)

    storage = _storage()
    store = _load(storage)
    book = _require_book(store, book_id)

    if new_status == BookStatus.READ.value:
        store.dispatch(Action.of(ActionType.FINISH_READING, id=book_id, rating=rating, note=note))
        reward = reading_reward(book, store.get_state().config) if book.status != BookStatus.READ else 0
        if reward:
            store.dispatch(actions.earn_points(reward, f"finished {book.title}"))
            print(f"+{reward} points")
        _collect_saga_rewards(store)
    elif new_status == BookStatus.READING.value:
        store.dispatch(Action.of(ActionType.START_READING, id=book_id, note=note))
    elif new_status == BookStatus.LOANED.value:
        store.dispatch(Action.of(ActionType.LOAN_BOOK, id=book_id, loaned_to=loaned_to))
    else:
        store.dispatch(actions.change_book_state(book_id, new_status, note))

    _save(store, storage)
    print(f"{book.title}: {book.status.value} -> {new_status}")


@app.command("delete")
def cli_delete(book_id: int):
    """Delete a book."""
    storage = _storage()
    store = _load(storage)
    book = _require_book(store, book_id)
    store.dispatch(actions.delete_book(book_id))
    _save(store, storage)
    print(f"Deleted: {book.title}")


@app.command("search")
def cli_search(query: str):
    """Search titles, authors and ISBNs; the term is remembered in search history."""
    storage = _storage()
    store = _load(storage)
    needle = query.lower().strip()
    results = [
        b for b in store.get_state().books
        if needle in b.title.lower() or needle in (b.author or "").lower() or needle in (b.isbn or "")
    ]
    if store.get_state().config.get("search_history_enabled", True):
        store.dispatch(actions.add_search_history(query.strip()))
        _save(store, storage)
    print_list_result(results)


# ------------------------- Sagas & points ------------------------- #
@app.command("sagas")
def cli_sagas(
    fix: bool = typer.Option(False, "--fix", help="Re-link books to sagas by name"),
    clean: bool = typer.Option(False, "--clean", help="Merge sagas sharing a name"),
):
    """List sagas, optionally repairing saga links first."""
    storage = _storage()
    store = _load(storage)
    if fix:
        store.dispatch(Action.of(ActionType.FIX_SAGA_DATA))
    if clean:
        store.dispatch(Action.of(ActionType.CLEAN_DUPLICATE_SAGAS))
    if fix or clean:
        _save(store, storage)
    print_sagas_result(store.get_state().sagas)


@app.command("points")
def cli_points(
    earn: Optional[int] = typer.Option(None, "--earn", help="Add points"),
    spend: Optional[int] = typer.Option(None, "--spend", help="Spend points"),
    purchase: bool = typer.Option(False, "--purchase", help="Buy a book with points"),
    reset: bool = typer.Option(False, "--reset", help="Reset the points ledger"),
):
    """Show or change the points balance."""
    storage = _storage()
    store = _load(storage)
    changed = False
    if earn is not None:
        store.dispatch(actions.earn_points(earn, "manual"))
        changed = True
    if spend is not None:
        store.dispatch(actions.spend_points(spend, "manual"))
        changed = True
    if purchase:
        if not can_afford(store.get_state()):
            print(f"Not enough points: {store.get_state().purchase_cost} needed.")
            raise typer.Exit(code=1)
        store.dispatch(actions.purchase_with_points())
        changed = True
    if reset:
        store.dispatch(actions.reset_points())
        changed = True
    if changed:
        _save(store, storage)

    state = store.get_state()
    print(f"Points: {state.current_points} (earned {state.total_earned}, "
          f"books purchased {state.books_purchased_with_points})")


@app.command("stats")
def cli_stats(year: Optional[int] = typer.Option(None, "--year", help="Year for the reading goal")):
    """Show library statistics."""
    state = _load(_storage()).get_state()
    print_stats_result(compute_statistics(state, year=year))


# ------------------------- Data ------------------------- #
@app.command("export")
def cli_export(output: str = typer.Argument("library_export.json")):
    """Export the full library snapshot to a JSON file."""
    storage = _storage()
    store = _load(storage)
    store.dispatch(Action.of(ActionType.SET_LAST_BACKUP))
    snapshot = store.get_state().to_snapshot()
    Path(output).write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
    _save(store, storage)
    print(f"Exported {len(snapshot['books'])} books to {output}")


@app.command("import")
def cli_import(input_file: str):
    """Import a JSON snapshot (legacy files are migrated first)."""
    path = Path(input_file)
    if not path.exists():
        print(f"File not found: {input_file}")
        raise typer.Exit(code=1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        snapshot = migrate(data).to_snapshot() if is_legacy(data) else data
    except (json.JSONDecodeError, BookTrackerError) as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)

    storage = _storage()
    store = _load(storage)
    store.dispatch(actions.import_data(**snapshot))
    _save(store, storage)
    print(f"Imported {len(store.get_state().books)} books")


@app.command("migrate")
def cli_migrate():
    """Migrate a legacy local file to the current format in place."""
    storage = _storage()
    try:
        blob = storage.read()
        if not blob:
            print("Nothing to migrate.")
            return
        if not is_legacy(blob):
            print("Already migrated.")
            return
        state = migrate(blob)
    except LegacyMigrationError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    storage.write(state.to_snapshot())
    print(f"Migrated {len(state.books)} books and {len(state.sagas)} sagas")


# ------------------------- Remote ------------------------- #
async def _run_sync(storage: LegacyStorage, user_id: str, remote_url: str, push: bool) -> Store:
    remote = HttpRemoteStore(base_url=remote_url)
    try:
        if push:
            store = _load(storage)
            await remote.save_all(user_id, store.get_state().to_snapshot())
            return store
        store = Store(LibraryState())
        engine = SyncEngine(store, remote, storage, debounce_seconds=0)
        await engine.start(user_id)
        await engine.stop()
        if engine.status == SyncStatus.ERROR:
            raise BookTrackerError(engine.last_error or "sync failed")
        return store
    finally:
        await cleanup_http_client()


@app.command("sync")
def cli_sync(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Remote user id (default: BOOKTRACKER_USER_ID)"),
    remote_url: Optional[str] = typer.Option(None, "--remote-url"),
    push: bool = typer.Option(False, "--push", help="Overwrite the remote copy with the local library"),
):
    """Pull the remote library (migrating local data on first sync), or push with --push."""
    if not settings.sync_enabled:
        print("Error: sync is disabled (BOOKTRACKER_SYNC_ENABLED)")
        raise typer.Exit(code=1)
    user_id = user or settings.user_id
    if not user_id:
        print("Error: no user id; pass --user or set BOOKTRACKER_USER_ID")
        raise typer.Exit(code=1)
    storage = _storage()
    try:
        store = asyncio.run(_run_sync(storage, user_id, remote_url or settings.remote_url, push))
    except BookTrackerError as e:
        print(f"Sync failed: {e}")
        raise typer.Exit(code=1)
    _save(store, storage)
    verb = "Pushed" if push else "Synced"
    print(f"{verb} {len(store.get_state().books)} books for {user_id}")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Run the snapshot API server."""
    import uvicorn

    console.print(f"[bold green]Serving snapshot API on {host or settings.api_host}:{port or settings.api_port}[/]")
    uvicorn.run("booktracker.api:app", host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":
    app()
