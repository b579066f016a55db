import pytest

from bookloans.library import Library


@pytest.fixture
def db_file(tmp_path, request, monkeypatch):
    # A fresh database file per test; LIBRARY_DB_FILE makes the CLI and the API use it too
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setenv("LIBRARY_DB_FILE", path)
    monkeypatch.delenv("LIB_CLI_OUTPUT", raising=False)
    return path


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()


@pytest.fixture
def member(lib):
    return lib.users.create_user({
        "name": "Ada Reader",
        "username": "ada",
        "email": "ada@example.com",
        "password": "s3cret",
    })


@pytest.fixture
def gatsby(lib):
    """The Great Gatsby with copies GATSBY-1 and GATSBY-2."""
    book = lib.catalog.create_book({"title": "The Great Gatsby", "author": "F. Scott Fitzgerald"})
    lib.catalog.create_copy(book.id, "GATSBY-1")
    lib.catalog.create_copy(book.id, "GATSBY-2")
    return book
