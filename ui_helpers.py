import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_rows(title: str, columns: List[str], rows: List[Dict[str, Any]], plain_line: str) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for col in columns:
            table.add_column(col.replace("_", " ").title(), style="magenta" if col == "id" else "white")
        for row in rows:
            table.add_row(*[str(row.get(col, "")) for col in columns])
        _console.print(table)
    else:
        for row in rows:
            print(plain_line.format(**row))


def print_book_list(books: List[Any]) -> None:
    """Print books in the current output mode.
    - plain: 'id - Title by Author [location] (amount available)' lines, or 'No books in library.'
    - json: JSON array of the exposed book fields
    - rich: Rich table
    """
    if not books:
        print("No books in library.")
        return
    rows = [b.to_dict() for b in books]
    _print_rows("📚 Books", ["id", "author", "title", "location", "amount"], rows,
                "{id} - {title} by {author} [{location}] ({amount} available)")


def print_user_list(users: List[Any]) -> None:
    if not users:
        print("No users.")
        return
    rows = [u.to_dict() for u in users]
    _print_rows("👤 Users", ["id", "name", "email", "admin", "violations"], rows,
                "{id} - {name} <{email}> violations: {violations}")


def print_checkout_list(checkouts: List[Any]) -> None:
    if not checkouts:
        print("No books borrowed.")
        return
    rows = [
        {
            "id": ch.id,
            "title": ch.book.title,
            "author": ch.book.author,
            "checkout_date_time": ch.checkout_date_time.isoformat(timespec="seconds"),
        }
        for ch in checkouts
    ]
    _print_rows("📖 Checkouts", ["id", "title", "author", "checkout_date_time"], rows,
                "{id} - {title} by {author} since {checkout_date_time}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print catalog statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    total = stats.get("total_books", 0)
    authors = stats.get("unique_authors", 0)
    copies = stats.get("available_copies", 0)

    if mode == "json":
        print(json.dumps({"total_books": total, "unique_authors": authors, "available_copies": copies},
                         ensure_ascii=False))
    elif mode == "rich":
        content = f"[bold]Total Books:[/] {total}\n[bold]Unique Authors:[/] {authors}\n[bold]Available Copies:[/] {copies}"
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {total}")
        print(f"Unique Authors: {authors}")
        print(f"Available Copies: {copies}")
