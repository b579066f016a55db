import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling CLI output mode: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_books(books: List[Any]) -> None:
    """Print books in the current output mode.
    - plain: '<id> - Title by Author' lines, or 'No books in library.'
    - json: array of book dicts
    - rich: table
    """
    if not books:
        print("No books in library.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="dim")
        for b in books:
            table.add_row(str(b.id), b.title, b.author, b.genre or "")
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author}")


def print_copies(copies: List[Any]) -> None:
    if not copies:
        print("No copies found.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([c.to_dict() for c in copies])
    elif mode == "rich":
        table = Table(title="🏷️ Copies", header_style="bold cyan")
        table.add_column("Label", style="magenta", no_wrap=True)
        table.add_column("Book", style="white")
        table.add_column("Status")
        for c in copies:
            status = "[green]available[/]" if c.available else "[red]issued[/]"
            table.add_row(c.label, str(c.book_id), status)
        _console.print(table)
    else:
        for c in copies:
            print(f"{c.label} (book {c.book_id}) - {'available' if c.available else 'issued'}")


def print_loans(loans: List[Any]) -> None:
    if not loans:
        print("No issued books.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([loan.to_dict() for loan in loans])
    elif mode == "rich":
        table = Table(title="📖 Issued books", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Copy")
        table.add_column("User")
        table.add_column("Issued")
        table.add_column("Returned")
        for loan in loans:
            table.add_row(str(loan.id), loan.copy_label or "-", str(loan.user_id),
                          loan.issue_date, loan.return_date or "[yellow]open[/]")
        _console.print(table)
    else:
        for loan in loans:
            returned = f"returned {loan.return_date}" if loan.return_date else "open"
            print(f"#{loan.id} {loan.copy_label or '-'} -> user {loan.user_id} "
                  f"issued {loan.issue_date}, {returned}")


def print_summary(title: str, data: Dict[str, Any]) -> None:
    """Print a small key/value result (seed counts, a single loan)."""
    mode = get_output_mode()
    if mode == "json":
        _print_json(data)
    elif mode == "rich":
        content = "\n".join(f"[bold]{k}:[/] {v}" for k, v in data.items())
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        print(title)
        for k, v in data.items():
            print(f"{k}: {v}")
