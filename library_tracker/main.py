import asyncio
import os
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from library_tracker import database
from library_tracker.config import settings
from library_tracker.library import Library
from library_tracker.services.google_books_service import GoogleBooksAPIError, GoogleBooksService
from library_tracker.services.http_client import HTTPClient
from library_tracker.ui_helpers import (
    print_external_result,
    print_list_result,
    print_stats_result,
    print_users_result,
    set_output_mode,
)
from library_tracker.users import UserNotFound, UserStore

APP_NAME = "Library Tracker CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _require_user(store: UserStore, email: str):
    user = store.find_by_email(email)
    if user is None:
        console.print(f"[bold red]No user with email {email}[/]")
        raise typer.Exit(code=1)
    return user


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
    """Create the database tables if they do not exist yet."""
    database.initialize_database()
    print(f"Database ready: {database.DATABASE_FILE}")


@app.command("users")
def cli_users():
    """List registered accounts."""
    database.initialize_database()
    print_users_result(UserStore().list_users())


@app.command("promote")
def cli_promote(
    email: str,
    revoke: bool = typer.Option(False, "--revoke", help="Remove administrator rights instead"),
):
    """Grant (or revoke) administrator rights."""
    database.initialize_database()
    try:
        user = UserStore().set_admin(email, is_admin=not revoke)
    except UserNotFound:
        console.print(f"[bold red]No user with email {email}[/]")
        raise typer.Exit(code=1)
    state = "is now an administrator" if user.is_admin else "is no longer an administrator"
    print(f"{user.username} {state}")


@app.command("books")
def cli_books(email: str, query: Optional[str] = typer.Option(None, "--query", "-q", help="Filter by text")):
    """List a user's books, newest first."""
    database.initialize_database()
    user = _require_user(UserStore(), email)
    library = Library()
    books = library.search_books(user.id, query) if query and query.strip() else library.list_books(user.id)
    print_list_result(books)


@app.command("stats")
def cli_stats(email: str):
    """Show a user's reading statistics."""
    database.initialize_database()
    user = _require_user(UserStore(), email)
    print_stats_result(Library().get_statistics(user.id))


async def _search_external(query: str, max_results: int):
    async with HTTPClient() as client:
        return await GoogleBooksService(client=client).search_books(query, max_results=max_results)


@app.command("search-external")
def cli_search_external(
    query: str,
    max_results: int = typer.Option(10, "--max-results", "-n", min=1, max=40),
):
    """Search Google Books."""
    try:
        books = asyncio.run(_search_external(query, max_results))
    except (ValueError, GoogleBooksAPIError) as e:
        console.print(f"[bold red]External search failed: {e}[/]")
        raise typer.Exit(code=1)
    print_external_result(books)


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    timeout: int = typer.Option(0, "--timeout", help="Seconds to run before stopping (0 = no timeout)"),
):
    """Start the API server with Uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_tracker.api:app",
        "--host", host,
        "--port", str(port),
    ]
    console.print(f"[green]Starting API on http://{host}:{port}/[/]")

    try:
        if timeout and timeout > 0:
            proc = subprocess.Popen(args, start_new_session=os.name != "nt")
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                # Time is up; terminate gracefully, then force
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait(timeout=3)
        else:
            if reload:
                args.append("--reload")
            subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
