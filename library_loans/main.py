import logging
import subprocess
import sys
import webbrowser
from datetime import date
from typing import Optional

import typer
from rich.console import Console

from library_loans import database
from library_loans.config import settings
from library_loans.errors import LibraryError
from library_loans.library import Library
from library_loans.models import MemberStatus
from library_loans.ui_helpers import (
    print_active_loans,
    print_book_details,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library Loans CLI"

console = Console(stderr=True)
logger = logging.getLogger(__name__)


class LibraryManager:
    """Holds the single Library instance for the CLI process."""
    _instance: Optional[Library] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        """Get or create the Library, rebuilding it when the database file changed (e.g. per-test databases)."""
        current_db = database.DATABASE_FILE
        if cls._instance is None or current_db != cls._db_file_snapshot:
            cls._instance = Library(db_file=current_db)
            cls._db_file_snapshot = current_db
            logger.debug(f"Library instance created for {current_db}")
        return cls._instance


def _fail(exc: Exception) -> None:
    """Print a library error and exit non-zero."""
    print(f"Error: {exc}")
    raise typer.Exit(code=1)


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log messages"),
):
    """Global options for the CLI (e.g. output mode)."""
    logging.basicConfig(level=logging.INFO if verbose else settings.log_level)
    if output:
        set_output_mode(output)

@app.command("init-db")
def cli_init_db():
    """Create the database schema."""
    lib = LibraryManager.get_instance()
    print(f"Database ready at {lib.db_file}")

@app.command("seed")
def cli_seed():
    """Load the sample authors, members and books and lend two of them."""
    lib = LibraryManager.get_instance()
    try:
        seeded = lib.seed()
    except LibraryError as e:
        _fail(e)
    if seeded:
        print("Sample data loaded.")
    else:
        print("Database already has data; nothing seeded.")

@app.command("add-author")
def cli_add_author(
    name: str,
    nationality: Optional[str] = typer.Option(None, "--nationality", "-n"),
    birth_date: Optional[str] = typer.Option(None, "--birth-date", help="YYYY-MM-DD"),
):
    """Add an author."""
    lib = LibraryManager.get_instance()
    try:
        born = date.fromisoformat(birth_date) if birth_date else None
        author = lib.add_author(name, birth_date=born, nationality=nationality)
    except (LibraryError, ValueError) as e:
        _fail(e)
    print(f"Author added: #{author.id} {author.name}")

@app.command("add-member")
def cli_add_member(
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone", "-p"),
):
    """Enroll a member."""
    lib = LibraryManager.get_instance()
    try:
        member = lib.add_member(name, email, phone=phone)
    except LibraryError as e:
        _fail(e)
    print(f"Member added: #{member.id} {member.name} <{member.email}>")

@app.command("set-status")
def cli_set_status(member_id: int, status: MemberStatus):
    """Change a member's status (Active, Suspended, Inactive)."""
    lib = LibraryManager.get_instance()
    member = lib.set_member_status(member_id, status)
    if not member:
        print(f"Member {member_id} not found.")
        raise typer.Exit(code=1)
    print(f"Member {member.id} is now {member.status.value}.")

@app.command("add-book")
def cli_add_book(
    title: str,
    author_id: int,
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Publication year"),
):
    """Add a book to the catalog."""
    lib = LibraryManager.get_instance()
    try:
        book = lib.add_book(title, author_id, genre=genre, publication_year=year)
    except LibraryError as e:
        _fail(e)
    print(f"Book added: #{book.id} {book.title}")

@app.command("books")
def cli_books():
    """Show every book with its author and availability."""
    lib = LibraryManager.get_instance()
    print_book_details([row.to_dict() for row in lib.book_details()])

@app.command("borrow")
def cli_borrow(
    book_id: int,
    member_id: int,
    days: int = typer.Option(settings.default_loan_days, "--days", "-d", help="Loan duration in days"),
):
    """Lend a book to a member."""
    lib = LibraryManager.get_instance()
    try:
        loan = lib.register_loan(book_id, member_id, days)
    except LibraryError as e:
        _fail(e)
    print(f"Loan {loan.id} registered: book {loan.book_id} due {loan.due_date.isoformat()}")

@app.command("return")
def cli_return(loan_id: int):
    """Return a loaned book."""
    lib = LibraryManager.get_instance()
    try:
        loan = lib.return_loan(loan_id)
    except LibraryError as e:
        _fail(e)
    if loan.days_overdue:
        print(f"Loan {loan.id} returned {loan.days_overdue} days late.")
    else:
        print(f"Loan {loan.id} returned on time.")

@app.command("reopen")
def cli_reopen(loan_id: int):
    """Undo the return of a loan."""
    lib = LibraryManager.get_instance()
    try:
        loan = lib.reopen_loan(loan_id)
    except LibraryError as e:
        _fail(e)
    print(f"Loan {loan.id} reopened: due {loan.due_date.isoformat()}")

@app.command("active-loans")
def cli_active_loans():
    """Show loans that have not been returned."""
    lib = LibraryManager.get_instance()
    print_active_loans([row.to_dict() for row in lib.active_loans()])

@app.command("stats")
def cli_stats():
    """Show library statistics."""
    lib = LibraryManager.get_instance()
    print_stats_result(lib.get_statistics())

@app.command("serve")
def cli_serve(open_browser: bool = typer.Option(True, "--open/--no-open", help="Open the API docs in a browser")):
    """Start the HTTP API using uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            logger.warning("Could not open a browser")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_loans.api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, check=False)
    except KeyboardInterrupt:
        console.print("[dim]Server stopped[/]")


if __name__ == "__main__":
    app()
