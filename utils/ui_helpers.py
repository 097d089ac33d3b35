import os
import json
from typing import List, Any
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


def print_list_result(books: List[Any]) -> None:
    """Print books according to the current output mode.
    - plain: 'ISBN - Name by Author (available: N) [id]' lines, or 'No books in library.'
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Author", style="white")
        table.add_column("Year", justify="right")
        table.add_column("Available", justify="right", style="green")
        for b in books:
            table.add_row(b.id, b.isbn, b.name, b.author, str(b.publication_year), str(b.available_quantity))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.isbn} - {b.name} by {b.author} (available: {b.available_quantity}) [{b.id}]")


def print_book_result(book: Any, title: str = "Book") -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Name:[/] {book.name}\n[bold]Author:[/] {book.author}\n"
            f"[bold]ISBN:[/] {book.isbn}\n[bold]Available:[/] {book.available_quantity}\n"
            f"[dim]{book.id}[/]"
        )
        _console.print(Panel.fit(content, title=f"📖 {title}", border_style="blue"))
    else:
        print(f"{title}: {book.name} by {book.author}")
        print(f"ID: {book.id}")
        print(f"Available: {book.available_quantity}")


def print_ledger_result(records: List[Any]) -> None:
    """Print the borrow/return history, newest first."""
    mode = get_output_mode()

    if not records:
        print("No lending history.")
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🧾 Lending history", header_style="bold cyan")
        table.add_column("Time (UTC)", no_wrap=True)
        table.add_column("Action")
        table.add_column("Customer")
        table.add_column("Book ID", style="dim")
        for r in records:
            style = "yellow" if r.action.value == "Borrowed" else "green"
            table.add_row(r.timestamp, f"[{style}]{r.action.value}[/]", r.customer_name, r.book_id)
        _console.print(table)
    else:
        for r in records:
            print(f"{r.timestamp} {r.action.value} by {r.customer_name} [{r.book_id}]")


def print_error(message: str, error_code: str) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps({"error": message, "error_code": error_code}, ensure_ascii=False))
    elif mode == "rich":
        _console.print(f"[bold red]Error ({error_code}):[/] {message}")
    else:
        print(f"Error ({error_code}): {message}")
