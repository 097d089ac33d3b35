import logging
import os
import subprocess
import sys
import webbrowser
from typing import Optional

import typer
from rich.console import Console

from config import settings
from elibrary.commands import (
    BorrowBookCommand,
    CreateBookCommand,
    GetBookQuery,
    ListBooksQuery,
    ListLedgerQuery,
    ReturnBookCommand,
    SearchBooksQuery,
)
from elibrary.library import Library
from elibrary.pipeline import Pipeline, build_pipeline
from elibrary.result import LibraryResult
from elibrary.retry import ConflictRetryPolicy
from utils.ui_helpers import (
    print_book_result,
    print_error,
    print_ledger_result,
    print_list_result,
    set_output_mode,
)

APP_NAME = "E-Library CLI"

console = Console()


class PipelineManager:
    """Lazily builds one Library + pipeline per database file."""

    _instance: Optional[Pipeline] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Pipeline:
        current_db = settings.database_file
        # Rebuild when the configured database changes (e.g. per-test databases)
        if cls._instance is None or current_db != cls._db_file_snapshot:
            library = Library(
                db_file=current_db,
                retry_policy=ConflictRetryPolicy.from_settings(settings),
                seed=settings.seed_data,
            )
            cls._instance = build_pipeline(library, settings)
            cls._db_file_snapshot = current_db
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._db_file_snapshot = None


def _send(request) -> LibraryResult:
    result = PipelineManager.get_instance().send(request)
    if result.is_failure:
        print_error(result.error, result.error_code)
        raise typer.Exit(code=1)
    return result


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show engine log messages"),
):
    """Global CLI options (output mode, logging)."""
    if output:
        set_output_mode(output)
    level = getattr(logging, settings.log_level.upper(), logging.INFO) if verbose else logging.WARNING
    logging.basicConfig(level=level)


@app.command("list")
def cli_list():
    """List every book in the catalog."""
    print_list_result(_send(ListBooksQuery()).value)


@app.command("show")
def cli_show(book_id: str = typer.Argument(..., help="Book ID")):
    """Show a single book."""
    print_book_result(_send(GetBookQuery(book_id=book_id)).value)


@app.command("search")
def cli_search(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Match on book name"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Match on author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", "-i", help="Match on ISBN"),
):
    """Search books; all given criteria must match."""
    books = _send(SearchBooksQuery(name=name, author=author, isbn=isbn)).value
    if not books:
        print("No books matched the criteria.")
        return
    print(f"Found {len(books)} book(s):")
    print_list_result(books)


@app.command("add")
def cli_add(
    name: str = typer.Argument(..., help="Book name"),
    author: str = typer.Argument(..., help="Author"),
    isbn: str = typer.Argument(..., help="ISBN"),
    year: int = typer.Argument(..., help="Publication year"),
    quantity: int = typer.Option(0, "--quantity", "-q", help="Copies available for lending"),
):
    """Add a new book to the catalog."""
    command = CreateBookCommand(name=name, author=author, isbn=isbn,
                                publication_year=year, quantity=quantity)
    book = _send(command).value
    print(f"Successfully added: {book.name} by {book.author}")
    print(f"ID: {book.id}")


@app.command("borrow")
def cli_borrow(
    book_id: str = typer.Argument(..., help="Book ID"),
    customer: str = typer.Argument(..., help="Customer name"),
):
    """Borrow one copy of a book."""
    book = _send(BorrowBookCommand(book_id=book_id, customer_name=customer)).value
    print(f"{customer} borrowed '{book.name}'. Remaining copies: {book.available_quantity}")


@app.command("return")
def cli_return(
    book_id: str = typer.Argument(..., help="Book ID"),
    customer: str = typer.Argument(..., help="Customer name"),
):
    """Return one copy of a book."""
    book = _send(ReturnBookCommand(book_id=book_id, customer_name=customer)).value
    print(f"{customer} returned '{book.name}'. Available copies: {book.available_quantity}")


@app.command("history")
def cli_history():
    """Show the borrow/return ledger, newest first."""
    print_ledger_result(_send(ListLedgerQuery()).value)


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Port"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open the API docs"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if not no_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            console.print("[yellow]Could not open a web browser automatically.[/]")

    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, check=False, env=os.environ.copy())
    except KeyboardInterrupt:
        print("Server stopped.")


if __name__ == "__main__":
    app()
