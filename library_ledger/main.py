import logging
import subprocess
import sys
from typing import Any, Dict, NoReturn, Optional

import typer
from rich.console import Console

from library_ledger.circulation import CirculationService
from library_ledger.config import settings
from library_ledger.database import initialize_database
from library_ledger.errors import CirculationError
from library_ledger.ui_helpers import (
    print_item_result,
    print_items_result,
    print_loans_result,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library Ledger CLI"

console = Console(stderr=True)

# Options collected by the global callback
_state: Dict[str, Any] = {"db_file": None}


def _service() -> CirculationService:
    return CirculationService(_state["db_file"] or settings.database_file)


def _fail(exc: CirculationError) -> NoReturn:
    """Report a circulation failure and exit with a non-zero code."""
    console.print(f"[bold red]{type(exc).__name__}:[/] {exc}")
    raise typer.Exit(code=1)


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
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log messages"),
):
    """Global options for the CLI (output mode, database file)."""
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)
    if output:
        set_output_mode(output)
    _state["db_file"] = db


@app.command("init-db")
def cli_init_db(seed: bool = typer.Option(False, "--seed", help="Insert sample items into an empty catalog")):
    """Create the database tables."""
    db_file = _state["db_file"] or settings.database_file
    try:
        initialize_database(db_file, seed=seed)
    except CirculationError as e:
        _fail(e)
    print(f"Database ready: {db_file}")


@app.command("list")
def cli_list(search: Optional[str] = typer.Option(None, "--search", "-s", help="Title/author substring")):
    """List items with their availability."""
    try:
        entries = _service().list_items(search)
    except CirculationError as e:
        _fail(e)
    print_items_result(entries)


@app.command("show")
def cli_show(item_id: int):
    """Show one item and its lending state."""
    try:
        entry = _service().get_item(item_id)
    except CirculationError as e:
        _fail(e)
    print_item_result(entry)


@app.command("add")
def cli_add(
    title: str,
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    year: Optional[int] = typer.Option(None, "--year", "-y"),
    copies: int = typer.Option(1, "--copies", "-c", help="Total copies"),
):
    """Add an item to the catalog."""
    try:
        entry = _service().add_item(title, author, year, copies)
    except CirculationError as e:
        _fail(e)
    print(f"Successfully added: {entry.item.title} (id {entry.item.id}, {entry.item.total_copies} copies)")


@app.command("update")
def cli_update(
    item_id: int,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    year: Optional[int] = typer.Option(None, "--year", "-y"),
    copies: Optional[int] = typer.Option(None, "--copies", "-c", help="New total copies"),
):
    """Update an item's fields; copies cannot drop below the copies on loan."""
    fields: Dict[str, Any] = {}
    if title is not None:
        fields["title"] = title
    if author is not None:
        fields["author"] = author
    if year is not None:
        fields["year"] = year
    if copies is not None:
        fields["total_copies"] = copies
    if not fields:
        print("Nothing to update. Provide --title, --author, --year and/or --copies.")
        raise typer.Exit(code=1)
    try:
        entry = _service().update_item(item_id, fields)
    except CirculationError as e:
        _fail(e)
    print_item_result(entry)


@app.command("remove")
def cli_remove(item_id: int):
    """Remove an item that has no open loans."""
    try:
        _service().remove_item(item_id)
    except CirculationError as e:
        _fail(e)
    print(f"Item {item_id} has been removed.")


@app.command("borrow")
def cli_borrow(item_id: int, borrower: str):
    """Lend one copy of an item."""
    try:
        result = _service().borrow(item_id, borrower)
    except CirculationError as e:
        _fail(e)
    print(f"Loan {result.record.id} opened for {result.record.borrower}. {result.available} copies left.")


@app.command("return")
def cli_return(
    item_id: int,
    record: Optional[int] = typer.Option(None, "--record", "-r", help="Loan record id (default: most recent loan)"),
):
    """Return a copy of an item."""
    try:
        result = _service().return_item(item_id, record)
    except CirculationError as e:
        _fail(e)
    print(f"Loan {result.record.id} closed. {result.available} copies available.")


@app.command("loans")
def cli_loans(item: Optional[int] = typer.Option(None, "--item", "-i", help="Only loans of this item")):
    """List loan records, newest first."""
    try:
        records = _service().list_loans(item)
    except CirculationError as e:
        _fail(e)
    print_loans_result(records)


@app.command("stats")
def cli_stats():
    """Show catalog and circulation statistics."""
    try:
        stats = _service().statistics()
    except CirculationError as e:
        _fail(e)
    print_stats_result(stats)


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_ledger.api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
