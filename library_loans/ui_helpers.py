import json
import os
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

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

def _print_rows(rows: List[Dict[str, Any]], columns: Sequence[Tuple[str, str]], title: str,
                empty_message: str, plain_format: str) -> None:
    """Print report rows in the current output mode.

    ``columns`` pairs a row key with its rich table header; ``plain_format``
    is a ``str.format`` template over the row keys.
    """
    if not rows:
        print(empty_message)
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*("" if row.get(key) is None else str(row.get(key)) for key, _ in columns))
        _console.print(table)
    else:
        for row in rows:
            print(plain_format.format(**row))

def print_book_details(rows: List[Dict[str, Any]]) -> None:
    """Book-details view.
    - plain: '#id Title by Author [Status]' lines, or 'No books in library.'
    """
    _print_rows(
        rows,
        [("book_id", "ID"), ("title", "Title"), ("author", "Author"), ("genre", "Genre"),
         ("publication_year", "Year"), ("status", "Status")],
        title="📚 Books",
        empty_message="No books in library.",
        plain_format="#{book_id} {title} by {author} [{status}]",
    )

def print_active_loans(rows: List[Dict[str, Any]]) -> None:
    """Active-loans view.
    - plain: one line per loan with due date and lateness
    """
    _print_rows(
        rows,
        [("loan_id", "Loan"), ("book_title", "Book"), ("member_name", "Member"), ("email", "Email"),
         ("loan_date", "Loaned"), ("due_date", "Due"), ("days_overdue", "Days overdue"),
         ("situation", "Situation")],
        title="📖 Active loans",
        empty_message="No active loans.",
        plain_format="Loan {loan_id}: {book_title} -> {member_name} <{email}> due {due_date} ({situation}, {days_overdue} days overdue)",
    )

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode."""
    if not stats:
        print("No statistics available.")
        return

    mode = get_output_mode()
    labels = [
        ("total_books", "Total Books"),
        ("available_books", "Available Books"),
        ("total_authors", "Authors"),
        ("total_members", "Members"),
        ("active_members", "Active Members"),
        ("active_loans", "Active Loans"),
        ("overdue_loans", "Overdue Loans"),
    ]
    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels:
            print(f"{label}: {stats.get(key, 0)}")
