import json
from unittest.mock import MagicMock

from typer.testing import CliRunner

from bookloans import main
from bookloans.main import app

runner = CliRunner()


def test_books_empty(lib):
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_seed_then_list(lib):
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0
    assert "books: 20" in result.stdout

    result = runner.invoke(app, ["books"])
    assert "The Great Gatsby by F. Scott Fitzgerald" in result.stdout

    result = runner.invoke(app, ["--output", "json", "copies"])
    copies = json.loads(result.stdout)
    assert len(copies) == 29
    gatsby = next(c for c in copies if c["copyId"] == "GATSBY-1")
    assert gatsby["available"] is True


def test_issue_return_cycle(lib, member, gatsby):
    result = runner.invoke(app, ["issue", str(member.id), str(gatsby.id), "gatsby-1", "--date", "2024-01-01"])
    assert result.exit_code == 0
    assert "Issued GATSBY-1 to user" in result.stdout

    result = runner.invoke(app, ["issue", str(member.id), str(gatsby.id), "GATSBY-1"])
    assert result.exit_code == 1
    assert "Error: Copy is already issued" in result.stdout

    result = runner.invoke(app, ["loans", "--open"])
    assert "GATSBY-1" in result.stdout

    loan_id = lib.engine.list_loans()[0].id
    result = runner.invoke(app, ["return", str(loan_id), "--date", "2024-01-15"])
    assert result.exit_code == 0
    assert "returned on 2024-01-15" in result.stdout
    assert lib.catalog.get_copy_by_label("GATSBY-1").available is True

    result = runner.invoke(app, ["loans", "--open"])
    assert "No issued books." in result.stdout


def test_issue_unknown_copy(lib, member, gatsby):
    result = runner.invoke(app, ["issue", str(member.id), str(gatsby.id), "NONEXISTENT"])
    assert result.exit_code == 1
    assert "Error: Copy not found" in result.stdout


def test_delete_loan(lib, member, gatsby):
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-2", "2024-01-01")
    result = runner.invoke(app, ["delete-loan", str(loan_id)])
    assert result.exit_code == 0
    assert f"Loan #{loan_id} deleted" in result.stdout
    assert lib.catalog.get_copy_by_label("GATSBY-2").available is True

    result = runner.invoke(app, ["delete-loan", str(loan_id)])
    assert result.exit_code == 1
    assert "Issued book not found" in result.stdout


def test_loans_for_user_json(lib, member, gatsby):
    lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    result = runner.invoke(app, ["--output", "json", "loans", "--user", str(member.id)])
    loans = json.loads(result.stdout)
    assert loans[0]["copyId"] == "GATSBY-1"
    assert loans[0]["status"] == "issued"


def test_db_option_points_at_another_file(lib, tmp_path):
    other = str(tmp_path / "other.db")
    result = runner.invoke(app, ["--db", other, "init-db"])
    assert result.exit_code == 0
    assert other in result.stdout


def test_serve_runs_uvicorn(lib, monkeypatch):
    run_mock = MagicMock()
    open_mock = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run_mock)
    monkeypatch.setattr(main.webbrowser, "open", open_mock)

    result = runner.invoke(app, ["serve", "--host", "127.0.0.1", "--port", "8123"])
    assert result.exit_code == 0
    assert "Starting API on http://127.0.0.1:8123/docs" in result.stdout
    open_mock.assert_called_once_with("http://127.0.0.1:8123/docs")
    args = run_mock.call_args[0][0]
    assert "bookloans.api:app" in args
    assert args[-1] == "8123"
