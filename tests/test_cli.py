import json

import pytest
from typer.testing import CliRunner
from unittest.mock import patch

from library_ledger.main import app
from library_ledger.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture
def cli(db_file, monkeypatch):
    """Invoke the CLI against the per-test database in plain output mode."""
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")

    def invoke(*args):
        return runner.invoke(app, ["--db", db_file, *args])

    return invoke


def test_list_empty_catalog(cli):
    result = cli("list")
    assert result.exit_code == 0
    assert "No items in catalog." in result.output


def test_init_db_with_seed(cli, db_file):
    result = cli("init-db", "--seed")
    assert result.exit_code == 0
    assert f"Database ready: {db_file}" in result.output

    listing = cli("list")
    assert "The Great Gatsby by F. Scott Fitzgerald [3/3 available]" in listing.output


def test_add_and_show(cli):
    result = cli("add", "Dune", "--author", "Frank Herbert", "--year", "1965", "--copies", "2")
    assert result.exit_code == 0
    assert "Successfully added: Dune (id 1, 2 copies)" in result.output

    shown = cli("show", "1")
    assert shown.exit_code == 0
    assert "Title: Dune" in shown.output
    assert "Author: Frank Herbert" in shown.output
    assert "Year: 1965" in shown.output
    assert "Available: 2/2 (full)" in shown.output


def test_add_rejects_empty_title(cli):
    result = cli("add", "   ")
    assert result.exit_code == 1
    assert "InvalidInput" in result.output


def test_borrow_and_return(cli):
    cli("add", "Dune", "--copies", "2")

    borrowed = cli("borrow", "1", "alice")
    assert borrowed.exit_code == 0
    assert "Loan 1 opened for alice. 1 copies left." in borrowed.output
    assert "Available: 1/2 (partially_loaned)" in cli("show", "1").output

    returned = cli("return", "1")
    assert returned.exit_code == 0
    assert "Loan 1 closed. 2 copies available." in returned.output


def test_borrow_when_exhausted(cli):
    cli("add", "Dune")
    cli("borrow", "1", "alice")

    result = cli("borrow", "1", "bob")
    assert result.exit_code == 1
    assert "CapacityExhausted" in result.output


def test_return_specific_record(cli):
    cli("add", "Dune", "--copies", "2")
    cli("borrow", "1", "alice")
    cli("borrow", "1", "bob")

    result = cli("return", "1", "--record", "1")
    assert result.exit_code == 0
    assert "Loan 1 closed." in result.output


def test_return_without_open_loans(cli):
    cli("add", "Dune")
    result = cli("return", "1")
    assert result.exit_code == 1
    assert "NotFound" in result.output


def test_update_copies_below_open_loans(cli):
    cli("add", "Dune", "--copies", "2")
    cli("borrow", "1", "alice")

    result = cli("update", "1", "--copies", "0")
    assert result.exit_code == 1
    assert "CapacityConflict" in result.output

    result = cli("update", "1", "--copies", "1", "--title", "Dune Messiah")
    assert result.exit_code == 0
    assert "Title: Dune Messiah" in result.output
    assert "Available: 0/1 (fully_loaned)" in result.output


def test_update_without_fields(cli):
    cli("add", "Dune")
    result = cli("update", "1")
    assert result.exit_code == 1
    assert "Nothing to update." in result.output


def test_remove(cli):
    cli("add", "Dune")
    cli("borrow", "1", "alice")

    blocked = cli("remove", "1")
    assert blocked.exit_code == 1
    assert "Conflict" in blocked.output

    cli("return", "1")
    result = cli("remove", "1")
    assert result.exit_code == 0
    assert "Item 1 has been removed." in result.output
    assert cli("show", "1").exit_code == 1


def test_loans_listing(cli):
    cli("add", "Dune")
    cli("add", "Emma")
    assert "No loan records." in cli("loans").output

    cli("borrow", "1", "alice")
    cli("borrow", "2", "bob")

    result = cli("loans", "--item", "2")
    assert result.exit_code == 0
    assert "item 2 - bob - open" in result.output
    assert "alice" not in result.output


def test_stats(cli):
    cli("add", "Dune", "--author", "Frank Herbert", "--copies", "3")
    cli("borrow", "1", "alice")

    result = cli("stats")
    assert result.exit_code == 0
    assert "Total Items: 1" in result.output
    assert "Open Loans: 1" in result.output
    assert "Available Copies: 2" in result.output


def test_json_output(cli):
    cli("add", "Dune", "--copies", "2")
    cli("borrow", "1", "alice")

    result = cli("--output", "json", "list")
    assert result.exit_code == 0
    items = json.loads(result.output)
    assert items == [{
        "id": 1,
        "title": "Dune",
        "author": "",
        "year": None,
        "totalCopies": 2,
        "available": 1,
    }]

    loans = json.loads(cli("--output", "json", "loans").output)
    assert loans[0]["itemId"] == 1
    assert loans[0]["status"] == "open"
    assert loans[0]["closedAt"] is None


@patch("library_ledger.main.subprocess.run")
def test_serve_command(mock_run, cli):
    result = cli("serve", "--host", "127.0.0.1", "--port", "9000")
    assert result.exit_code == 0
    assert "Starting API on http://127.0.0.1:9000/" in result.output
    args = mock_run.call_args[0][0]
    assert "library_ledger.api:app" in args
    assert args[-2:] == ["--port", "9000"]
