import json
import os
from typing import Iterable, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from booktracker.book import Book
from booktracker.models import Saga
from booktracker.statistics import LibraryStats

# Environment variable controlling CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKTRACKER_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_list_result(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'ID [status] Title by Author' lines, or 'No books in library.'
    - json: array of book dicts
    - rich: table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="green")
        table.add_column("Saga", style="yellow")
        for b in books:
            saga = (b.saga_name or "") if b.saga_id else ""
            if saga and b.reading_order:
                saga += f" #{b.reading_order}"
            table.add_row(str(b.id), b.title, b.author or "", b.status.value, saga)
        _console.print(table)
    else:
        for b in books:
            by = f" by {b.author}" if b.author else ""
            print(f"{b.id} [{b.status.value}] {b.title}{by}")


def print_sagas_result(sagas: Iterable[Saga]) -> None:
    mode = get_output_mode()
    sagas = list(sagas)

    if not sagas:
        print("No sagas in library.")
        return

    if mode == "json":
        print(json.dumps([s.to_dict() for s in sagas], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Sagas", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Books", justify="right")
        table.add_column("Complete")
        for s in sagas:
            table.add_row(str(s.id), s.name, str(s.count), "✅" if s.is_complete else "")
        _console.print(table)
    else:
        for s in sagas:
            done = " (complete)" if s.is_complete else ""
            print(f"{s.id} {s.name}: {s.count} books{done}")


def print_stats_result(stats: LibraryStats) -> None:
    """Print statistics in the current output mode."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats.to_dict(), ensure_ascii=False))
        return

    lines = [
        f"Total Books: {stats.total_books}",
        "By Status: " + ", ".join(f"{k}={v}" for k, v in sorted(stats.by_status.items())),
        f"Wishlist: {stats.wishlist}",
        f"Pages Read: {stats.pages_read}",
        f"Average Rating: {stats.average_rating}",
        f"Sagas Complete: {stats.sagas_complete}/{stats.sagas_complete + stats.sagas_active}",
        f"Yearly Goal: {stats.read_this_year}/{stats.yearly_goal}",
        f"Points: {stats.current_points}",
    ]
    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title="📊 Stats", border_style="blue"))
    else:
        for line in lines:
            print(line)
