import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

import database
from accounts import AccountService
from circulation import CirculationService
from config import settings
from library import Library, UnprocessableRequestError
from ui_helpers import (
    set_output_mode,
    print_book_list,
    print_checkout_list,
    print_stats_result,
    print_user_list,
)


console = Console()

app = typer.Typer(help="Library checkout administration CLI")


def _get_library() -> Library:
    """Library bound to the current database.DATABASE_FILE (tables created on demand)."""
    return Library()


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db():
    """Create the database tables."""
    _get_library()
    print(f"Database ready: {database.DATABASE_FILE}")


@app.command("seed")
def cli_seed(file_path: str = typer.Argument(database.JSON_FILE, help="JSON file with books and users")):
    """Load books and users from a JSON seed file."""
    _get_library()
    try:
        counts = database.seed_from_json(file_path)
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}")
        raise typer.Exit(code=1)
    print(f"Seeded {counts['books']} books and {counts['users']} users.")


@app.command("add-book")
def cli_add_book(
    author: str = typer.Option(..., "--author", "-a", help="Author name"),
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Shelf location"),
    amount: int = typer.Option(1, "--amount", "-n", help="Available copies"),
):
    """Add a book to the catalog."""
    lib = _get_library()
    try:
        book = lib.add_book(author=author, title=title, location=location, amount=amount)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@app.command("add-user")
def cli_add_user(
    name: str = typer.Option(..., "--name", help="Display name"),
    email: str = typer.Option(..., "--email", help="Login email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Login password"),
    admin: bool = typer.Option(False, "--admin", help="Grant administrator flag"),
):
    """Register a library user."""
    _get_library()
    try:
        user = AccountService().add_user(name=name, email=email, password=password, admin=admin)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Successfully added user: {user.email} (id {user.id})")


@app.command("list")
def cli_list():
    """List all books."""
    print_book_list(_get_library().list_books())


@app.command("find")
def cli_find(book_id: int):
    """Find a book by id and show its details."""
    book = _get_library().find_book(book_id)
    if book is None:
        print(f"Book with id {book_id} not found.")
        return
    print("Book Found")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"Location: {book.location}")
    print(f"Amount: {book.amount}")


@app.command("search")
def cli_search(
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Exact author name"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Substring of the title (ignoring case)"),
):
    """Search books by author and/or title substring."""
    try:
        books = _get_library().search(author=author, text=text)
    except UnprocessableRequestError as e:
        print(e.reason)
        return
    print(f"{len(books)} books found:")
    print_book_list(books)


@app.command("users")
def cli_users():
    """List registered users with their violation counts."""
    _get_library()
    print_user_list(AccountService().list_users())


@app.command("checkouts")
def cli_checkouts(email: str):
    """List the active checkouts of a user."""
    lib = _get_library()
    accounts = AccountService()
    user = accounts.find_by_email(email)
    if user is None:
        print(f"User {email} not found.")
        raise typer.Exit(code=1)
    print_checkout_list(CirculationService(lib, accounts).find_all_active_by_user(user))


@app.command("reset-violations")
def cli_reset_violations(email: str, violations: int = typer.Option(0, "--to", help="New violation count")):
    """Set a user's violation counter (default: clear it)."""
    _get_library()
    accounts = AccountService()
    user = accounts.find_by_email(email)
    if user is None:
        print(f"User {email} not found.")
        raise typer.Exit(code=1)
    try:
        accounts.update_violations(user.id, violations)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Violations of {user.email} set to {violations}.")


@app.command("stats")
def cli_stats():
    """Show catalog statistics."""
    print_stats_result(_get_library().get_statistics())


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    console.print(f"[bold green]Starting {settings.app_name} on http://{host}:{port}/[/]")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=True)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)
    except subprocess.CalledProcessError as e:
        raise typer.Exit(code=e.returncode)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/]")


if __name__ == "__main__":
    app()
