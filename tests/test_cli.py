import json

import pytest
from typer.testing import CliRunner
from unittest.mock import patch

from main import app
from book import Book

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(db_file, monkeypatch):
    # CLI komutları veritabanını ortamdan okur
    monkeypatch.setenv("LIBRARY_DB_FILE", db_file)
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")


def test_list_no_books(lib):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_list_books(lib):
    lib.add_book(Book("Dune", "Frank Herbert", total_copies=2, available_copies=1))

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "AIPSLIB000001 - Dune by Frank Herbert [1/2]" in result.stdout
    assert "Page 1 of 1" in result.stdout


def test_list_json_output(lib):
    lib.add_book(Book("Dune", "Frank Herbert", total_copies=2))

    result = runner.invoke(app, ["--output", "json", "list"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["total"] == 1
    assert payload["items"][0]["code"] == "AIPSLIB000001"


def test_add_book_success(lib):
    result = runner.invoke(app, ["add-book", "--title", "Test Book", "--author", "Test Author", "--total", "3"])
    assert result.exit_code == 0
    assert "Successfully added: Test Book (AIPSLIB000001)" in result.stdout
    assert lib.resolve_book("1").available_copies == 3


def test_add_book_duplicate_code(lib):
    lib.add_book(Book("Existing", "Author", code="X-1"))

    result = runner.invoke(app, ["add-book", "--title", "Again", "--code", "X-1"])
    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_lookup(lib):
    lib.add_book(Book("Dune", "Frank Herbert", code="AIPSLIB000042", total_copies=1))

    result = runner.invoke(app, ["lookup", "42"])
    assert result.exit_code == 0
    assert "Code: AIPSLIB000042" in result.stdout
    assert "Can issue: yes" in result.stdout


def test_lookup_not_found(lib):
    result = runner.invoke(app, ["lookup", "nonexistent"])
    assert result.exit_code == 1
    assert "Book nonexistent not found." in result.stdout


def test_issue_and_return(lib):
    lib.add_book(Book("Dune", "Frank Herbert", total_copies=1))
    member = lib.add_member("Ada", "student", "female")

    result = runner.invoke(app, ["issue", "1", "--member", member.code])
    assert result.exit_code == 0
    assert "Book issued successfully." in result.stdout

    result = runner.invoke(app, ["issue", "1"])
    assert result.exit_code == 1
    assert "No copies available to issue." in result.stdout

    result = runner.invoke(app, ["return", "1", "-m", member.code])
    assert result.exit_code == 0
    assert "Book returned successfully." in result.stdout
    assert lib.resolve_book("1").borrowers == []


def test_return_when_all_copies_in(lib):
    lib.add_book(Book("Dune", "Frank Herbert", total_copies=1))

    result = runner.invoke(app, ["return", "1"])
    assert result.exit_code == 1
    assert "All copies already returned." in result.stdout


def test_add_member_and_search(lib):
    result = runner.invoke(app, ["add-member", "--name", "Ada Lovelace", "--type", "student",
                                 "--gender", "female", "--email", "ada@example.com"])
    assert result.exit_code == 0
    assert "Member added: Ada Lovelace (AIPSMEM0001)" in result.stdout

    result = runner.invoke(app, ["members", "ada"])
    assert result.exit_code == 0
    assert "AIPSMEM0001 - Ada Lovelace (student)" in result.stdout


def test_add_member_invalid(lib):
    result = runner.invoke(app, ["add-member", "--name", "Robby", "--type", "robot", "--gender", "other"])
    assert result.exit_code == 1
    assert "Invalid member: Invalid member type" in result.stdout

    result = runner.invoke(app, ["members"])
    assert "No members found." in result.stdout


def test_stats(lib):
    lib.add_book(Book("Dune", "Frank Herbert", total_copies=2))

    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total Books: 1" in result.stdout
    assert "Available Copies: 2" in result.stdout


@patch("subprocess.run")
def test_serve_command(mock_subprocess_run, lib):
    result = runner.invoke(app, ["serve", "--port", "9001"])
    assert result.exit_code == 0
    assert "Starting API on http://" in result.stdout
    mock_subprocess_run.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
    assert "9001" in args
