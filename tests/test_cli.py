import json

import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

from library_tracker import database
from library_tracker import main
from library_tracker.main import app
from library_tracker.services.google_books_service import ExternalBook
from library_tracker.ui_helpers import OUTPUT_MODE_ENV
from library_tracker.validators import validate_book_submission

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # --output writes to the environment; restore it after each test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def alice_with_books(make_user, lib):
    alice = make_user()
    lib.add_book(alice.id, validate_book_submission({"title": "Dune", "author": "Frank Herbert", "status": "Read",
                                                     "rating": 5}))
    lib.add_book(alice.id, validate_book_submission({"title": "Emma", "author": "Jane Austen"}))
    return alice


def test_init_db():
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert database.DATABASE_FILE in result.stdout


def test_users_empty():
    result = runner.invoke(app, ["users"])
    assert result.exit_code == 0
    assert "No users registered." in result.stdout


def test_users_lists_accounts(alice_with_books):
    result = runner.invoke(app, ["users"])
    assert result.exit_code == 0
    assert "alice <alice@example.com> - 2 books" in result.stdout


def test_promote_and_revoke(make_user, user_store):
    make_user()
    result = runner.invoke(app, ["promote", "alice@example.com"])
    assert result.exit_code == 0
    assert "alice is now an administrator" in result.stdout
    assert user_store.find_by_email("alice@example.com").is_admin

    result = runner.invoke(app, ["promote", "alice@example.com", "--revoke"])
    assert result.exit_code == 0
    assert not user_store.find_by_email("alice@example.com").is_admin


def test_promote_unknown_user():
    result = runner.invoke(app, ["promote", "nobody@example.com"])
    assert result.exit_code == 1
    assert "No user with email nobody@example.com" in result.stdout


def test_books_plain(alice_with_books):
    result = runner.invoke(app, ["books", "alice@example.com"])
    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines == ["Emma by Jane Austen [To Read]", "Dune by Frank Herbert [Read]"]


def test_books_query(alice_with_books):
    result = runner.invoke(app, ["books", "alice@example.com", "--query", "austen"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "Emma by Jane Austen [To Read]"


def test_books_json(alice_with_books):
    result = runner.invoke(app, ["--output", "json", "books", "alice@example.com"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [b["title"] for b in payload] == ["Emma", "Dune"]


def test_books_empty(make_user):
    make_user()
    result = runner.invoke(app, ["books", "alice@example.com"])
    assert result.exit_code == 0
    assert "No books found." in result.stdout


def test_stats(alice_with_books):
    result = runner.invoke(app, ["stats", "alice@example.com"])
    assert result.exit_code == 0
    assert "Total Books: 2" in result.stdout
    assert "Read: 1" in result.stdout
    assert "Average Rating: 5" in result.stdout


def test_stats_json(alice_with_books):
    result = runner.invoke(app, ["-o", "json", "stats", "alice@example.com"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["totalBooks"] == 2


def test_search_external_not_configured():
    result = runner.invoke(app, ["search-external", "dune"])
    assert result.exit_code == 1
    assert "Google Books API not configured" in result.stdout


def test_search_external(monkeypatch):
    service = MagicMock()

    async def fake_search(query, max_results=None):
        return [ExternalBook(title="Dune", author="Frank Herbert", isbn="9780441172719")]

    service.search_books = fake_search
    monkeypatch.setattr(main, "GoogleBooksService", MagicMock(return_value=service))

    result = runner.invoke(app, ["search-external", "dune", "--max-results", "5"])
    assert result.exit_code == 0
    assert "9780441172719 - Dune by Frank Herbert" in result.stdout


def test_serve_builds_uvicorn_command(monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run_mock)

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "8001"])
    assert result.exit_code == 0
    args = run_mock.call_args[0][0]
    assert args[1:4] == ["-m", "uvicorn", "library_tracker.api:app"]
    assert args[-4:] == ["--host", "0.0.0.0", "--port", "8001"]
