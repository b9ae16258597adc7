import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from library_ledger.loan import LoanRecord
from library_ledger.read_model import ItemAvailability

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LEDGER_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _item_payload(entry: ItemAvailability) -> Dict[str, Any]:
    item = entry.item
    return {
        "id": item.id,
        "title": item.title,
        "author": item.author,
        "year": item.year,
        "totalCopies": item.total_copies,
        "available": entry.available,
    }


def _loan_payload(record: LoanRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "itemId": record.item_id,
        "borrower": record.borrower,
        "openedAt": record.opened_at,
        "closedAt": record.closed_at,
        "status": record.status.value,
    }


def print_items_result(entries: List[ItemAvailability]) -> None:
    """Print items according to the current output mode.
    - plain: 'ID - Title by Author [available/total]' lines, or 'No items in catalog.'
    - json: JSON array
    - rich: Rich table
    """
    mode = get_output_mode()

    if not entries:
        print("No items in catalog.")
        return

    if mode == "json":
        print(json.dumps([_item_payload(e) for e in entries], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Items", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Year", style="dim")
        table.add_column("Available", justify="right")
        for e in entries:
            colour = "green" if e.available > 0 else "red"
            table.add_row(
                str(e.item.id),
                e.item.title,
                e.item.author,
                str(e.item.year or ""),
                f"[{colour}]{e.available}[/]/{e.item.total_copies}",
            )
        _console.print(table)
    else:
        for e in entries:
            print(f"{e.item.id} - {e.item.title} by {e.item.author or 'Unknown'} "
                  f"[{e.available}/{e.item.total_copies} available]")


def print_item_result(entry: ItemAvailability) -> None:
    mode = get_output_mode()
    if mode == "json":
        payload = _item_payload(entry)
        payload["state"] = entry.state.value
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        item = entry.item
        content = (f"[bold]Title:[/] {item.title}\n[bold]Author:[/] {item.author}\n"
                   f"[bold]Year:[/] {item.year or '-'}\n"
                   f"[bold]Available:[/] {entry.available}/{item.total_copies} ({entry.state.value})")
        _console.print(Panel.fit(content, title=f"📖 Item {item.id}", border_style="green"))
    else:
        item = entry.item
        print(f"ID: {item.id}")
        print(f"Title: {item.title}")
        print(f"Author: {item.author}")
        print(f"Year: {item.year if item.year is not None else '-'}")
        print(f"Available: {entry.available}/{item.total_copies} ({entry.state.value})")


def print_loans_result(records: List[LoanRecord]) -> None:
    mode = get_output_mode()

    if not records:
        print("No loan records.")
        return

    if mode == "json":
        print(json.dumps([_loan_payload(r) for r in records], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🔖 Loans", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Item", justify="right")
        table.add_column("Borrower")
        table.add_column("Opened")
        table.add_column("Closed")
        table.add_column("Status")
        for r in records:
            status = "[yellow]open[/]" if r.is_open else "[dim]closed[/]"
            table.add_row(str(r.id), str(r.item_id), r.borrower, r.opened_at, r.closed_at or "", status)
        _console.print(table)
    else:
        for r in records:
            closed = f" -> {r.closed_at}" if r.closed_at else ""
            print(f"{r.id} - item {r.item_id} - {r.borrower} - {r.status.value} ({r.opened_at}{closed})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics according to the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (f"[bold]Total Items:[/] {stats['total_items']}\n"
                   f"[bold]Unique Authors:[/] {stats['unique_authors']}\n"
                   f"[bold]Total Copies:[/] {stats['total_copies']}\n"
                   f"[bold]Open Loans:[/] {stats['open_loans']}\n"
                   f"[bold]Available Copies:[/] {stats['available_copies']}")
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Items: {stats['total_items']}")
        print(f"Unique Authors: {stats['unique_authors']}")
        print(f"Total Copies: {stats['total_copies']}")
        print(f"Open Loans: {stats['open_loans']}")
        print(f"Available Copies: {stats['available_copies']}")
