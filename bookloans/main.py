import logging
import subprocess
import sys
import webbrowser
from typing import Optional

import typer
from rich.console import Console

from .config import settings
from .database import initialize_database
from .errors import LibraryError
from .library import Library
from .seed import seed_library
from .ui_helpers import print_books, print_copies, print_loans, print_summary, set_output_mode
from .validators import DateValidator

console = Console()

app = typer.Typer(help="Library issuance CLI")

_state = {"db_file": None}


def _library() -> Library:
    return Library(db_file=_state["db_file"])


def _fail(exc: LibraryError) -> None:
    print(f"Error: {exc.message}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(
        None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE or library.db)",
    ),
):
    """Global options for the CLI (output mode, database file)."""
    # CLI output goes to stdout; keep library logging to warnings unless DEBUG is set.
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.WARNING)
    if output:
        set_output_mode(output)
    _state["db_file"] = db


@app.command("init-db")
def cli_init_db():
    """Create the database schema if it does not exist."""
    lib = _library()
    initialize_database(lib.db_file)
    print(f"Database ready: {lib.db_file}")


@app.command("seed")
def cli_seed(admin_password: Optional[str] = typer.Option(None, "--admin-password",
                                                          help="Also create the admin account")):
    """Load the sample catalog (20 books with labelled copies)."""
    try:
        counts = seed_library(_library(), admin_password=admin_password)
    except LibraryError as e:
        _fail(e)
    print_summary("Seed complete", counts)


@app.command("books")
def cli_books():
    """List all books."""
    try:
        print_books(_library().catalog.list_books())
    except LibraryError as e:
        _fail(e)


@app.command("copies")
def cli_copies(book: Optional[int] = typer.Option(None, "--book", help="Only copies of this book id")):
    """List copies and whether they are available."""
    lib = _library()
    try:
        copies = lib.catalog.list_copies_for_book(book) if book else lib.catalog.list_copies()
    except LibraryError as e:
        _fail(e)
    print_copies(copies)


@app.command("issue")
def cli_issue(
    user_id: int,
    book_id: int,
    label: str,
    date: Optional[str] = typer.Option(None, "--date", help="Issue date YYYY-MM-DD (default: today)"),
):
    """Issue the copy LABEL of BOOK_ID to USER_ID."""
    lib = _library()
    try:
        loan_id = lib.engine.issue_copy(user_id, book_id, label, date or DateValidator.today())
    except LibraryError as e:
        _fail(e)
    print(f"Issued {label.strip().upper()} to user {user_id} (loan #{loan_id})")


@app.command("return")
def cli_return(
    loan_id: int,
    date: Optional[str] = typer.Option(None, "--date", help="Return date YYYY-MM-DD (default: today)"),
):
    """Return the copy held by loan LOAN_ID."""
    try:
        loan = _library().engine.return_copy(loan_id, date)
    except LibraryError as e:
        _fail(e)
    print(f"Loan #{loan.id} returned on {loan.return_date}; {loan.copy_label} is available")


@app.command("loans")
def cli_loans(
    user: Optional[int] = typer.Option(None, "--user", help="Only loans of this user id"),
    open_only: bool = typer.Option(False, "--open", help="Only loans not yet returned"),
):
    """List issued books."""
    lib = _library()
    try:
        loans = lib.engine.list_loans_for_user(user) if user else lib.engine.list_loans()
    except LibraryError as e:
        _fail(e)
    if open_only:
        loans = [loan for loan in loans if loan.is_open]
    print_loans(loans)


@app.command("delete-loan")
def cli_delete_loan(loan_id: int):
    """Delete a loan record; an open loan frees its copy."""
    try:
        _library().engine.delete_loan(loan_id)
    except LibraryError as e:
        _fail(e)
    print(f"Loan #{loan_id} deleted")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Start the API with uvicorn and open the interactive docs."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        console.print("[yellow]Could not open a web browser automatically.[/]")
    args = [sys.executable, "-m", "uvicorn", "bookloans.api:app", "--host", host, "--port", str(port)]
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
