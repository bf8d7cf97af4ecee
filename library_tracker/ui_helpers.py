import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRARY_TRACKER_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def print_list_result(books: List[Any]) -> None:
    """Print books in the current output mode.
    - plain: 'Title by Author [Status]' lines, or 'No books found.'
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books found.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="magenta", no_wrap=True)
        table.add_column("Rating", justify="right")
        for b in books:
            table.add_row(b.title, b.author, b.status, str(b.rating or "-"))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.title} by {b.author} [{b.status}]")

def print_external_result(books: List[Any]) -> None:
    """Print Google Books matches; same modes as print_list_result."""
    mode = get_output_mode()

    if not books:
        print("No external books found.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🔎 Google Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        for b in books:
            table.add_row(b.isbn, b.title, b.author)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.isbn or '-'} - {b.title} by {b.author}")

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print reading statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Total Books:[/] {stats['totalBooks']}\n"
            f"[bold]Read:[/] {stats['booksRead']}  "
            f"[bold]Reading:[/] {stats['booksReading']}  "
            f"[bold]To Read:[/] {stats['booksToRead']}\n"
            f"[bold]Average Rating:[/] {stats['averageRating']}\n"
            f"[bold]Total Pages:[/] {stats['totalPages']}"
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {stats['totalBooks']}")
        print(f"Read: {stats['booksRead']}")
        print(f"Reading: {stats['booksReading']}")
        print(f"To Read: {stats['booksToRead']}")
        print(f"Average Rating: {stats['averageRating']}")
        print(f"Total Pages: {stats['totalPages']}")

def print_users_result(users: List[Any]) -> None:
    """Print registered accounts with their stats snapshot."""
    mode = get_output_mode()

    if not users:
        print("No users registered.")
        return

    if mode == "json":
        print(json.dumps([u.to_dict() for u in users], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👤 Users", show_lines=True, header_style="bold cyan")
        table.add_column("Username", style="white")
        table.add_column("Email", style="white")
        table.add_column("Admin", justify="center")
        table.add_column("Books", justify="right")
        for u in users:
            table.add_row(u.username, u.email, "yes" if u.is_admin else "", str(u.stats.total_books))
        _console.print(table)
    else:
        for u in users:
            admin = " (admin)" if u.is_admin else ""
            print(f"{u.username} <{u.email}>{admin} - {u.stats.total_books} books")
