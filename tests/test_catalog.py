import pytest

from bookloans.errors import Conflict, InvalidArgument, NotFound
from bookloans.seed import SAMPLE_BOOKS, seed_library


def test_create_book_requires_title_and_author(lib):
    with pytest.raises(InvalidArgument):
        lib.catalog.create_book({"title": "Nameless"})
    with pytest.raises(InvalidArgument):
        lib.catalog.create_book({"title": "   ", "author": "Someone"})


def test_create_book_with_generated_copies(lib):
    book = lib.catalog.create_book({"title": "Moby Dick", "author": "Herman Melville"}, copies=3)
    labels = [c.label for c in lib.catalog.list_copies_for_book(book.id)]
    assert labels == ["MOBYDICK-1", "MOBYDICK-2", "MOBYDICK-3"]
    assert all(c.available for c in lib.catalog.list_copies_for_book(book.id))


def test_generated_labels_skip_existing(lib):
    lib.catalog.create_book({"title": "Dune", "author": "Frank Herbert"}, copies=2)
    second = lib.catalog.create_book({"title": "Dune", "author": "Frank Herbert"}, copies=1)
    assert [c.label for c in lib.catalog.list_copies_for_book(second.id)] == ["DUNE-3"]


def test_update_book(lib, gatsby):
    book = lib.catalog.update_book(gatsby.id, {"genre": "Classic", "publication_date": 1925})
    assert book.genre == "Classic"
    assert book.publication_date == "1925"
    with pytest.raises(InvalidArgument):
        lib.catalog.update_book(gatsby.id, {"title": ""})
    with pytest.raises(NotFound):
        lib.catalog.update_book(999, {"genre": "Any"})


def test_delete_book_refused_while_a_copy_is_issued(lib, member, gatsby):
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    with pytest.raises(Conflict):
        lib.catalog.delete_book(gatsby.id)
    lib.engine.return_copy(loan_id, "2024-01-02")
    # returned loans still reference the book
    with pytest.raises(Conflict):
        lib.catalog.delete_book(gatsby.id)
    assert [loan.id for loan in lib.engine.list_loans()] == [loan_id]
    assert lib.catalog.get_book(gatsby.id).title == "The Great Gatsby"


def test_delete_book_without_loans_removes_its_copies(lib, gatsby):
    lib.catalog.delete_book(gatsby.id)
    assert lib.catalog.list_copies() == []
    with pytest.raises(NotFound):
        lib.catalog.get_book(gatsby.id)


def test_book_details_editable_while_a_copy_is_issued(lib, member, gatsby):
    lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    assert lib.catalog.update_book(gatsby.id, {"genre": "Classic"}).genre == "Classic"


def test_create_copy_rules(lib, gatsby):
    with pytest.raises(Conflict):
        lib.catalog.create_copy(gatsby.id, "gatsby-1")
    with pytest.raises(NotFound):
        lib.catalog.create_copy(999, "ORPHAN-1")
    with pytest.raises(InvalidArgument):
        lib.catalog.create_copy(gatsby.id, "has spaces")
    copy = lib.catalog.create_copy(gatsby.id, "gatsby-3")
    assert copy.label == "GATSBY-3"
    assert copy.available is True


def test_issued_copy_cannot_be_edited_or_deleted(lib, member, gatsby):
    lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    copy = lib.catalog.get_copy_by_label("GATSBY-1")
    with pytest.raises(Conflict):
        lib.catalog.update_copy(copy.id, label="GATSBY-9")
    with pytest.raises(Conflict):
        lib.catalog.delete_copy(copy.id)


def test_relabel_available_copy(lib, gatsby):
    copy = lib.catalog.get_copy_by_label("GATSBY-2")
    with pytest.raises(Conflict):
        lib.catalog.update_copy(copy.id, label="GATSBY-1")
    assert lib.catalog.update_copy(copy.id, label="gatsby-b").label == "GATSBY-B"


def test_deleting_available_copy_keeps_loan_history(lib, member, gatsby):
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    lib.engine.return_copy(loan_id, "2024-01-02")
    lib.catalog.delete_copy(lib.catalog.get_copy_by_label("GATSBY-1").id)
    loan = lib.engine.get_loan(loan_id)
    assert loan.copy_pk is None
    assert loan.copy_label is None


def test_closed_loan_without_copy_can_still_be_corrected(lib, member, gatsby):
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    lib.engine.return_copy(loan_id, "2024-01-02")
    lib.catalog.delete_copy(lib.catalog.get_copy_by_label("GATSBY-1").id)

    loan = lib.engine.edit_loan(loan_id, {"issueDate": "2023-12-31"})
    assert loan.issue_date == "2023-12-31"
    assert loan.return_date == "2024-01-02"
    assert loan.copy_pk is None

    # reopening needs a copy to hold
    with pytest.raises(InvalidArgument):
        lib.engine.edit_loan(loan_id, {"returnDate": None})
    loan = lib.engine.edit_loan(loan_id, {"returnDate": None, "copyId": "GATSBY-2"})
    assert loan.is_open
    assert lib.catalog.get_copy_by_label("GATSBY-2").available is False


def test_copy_with_loan_history_cannot_move_books(lib, member, gatsby):
    other = lib.catalog.create_book({"title": "Tender Is the Night", "author": "F. Scott Fitzgerald"})
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    lib.engine.return_copy(loan_id, "2024-01-02")

    copy = lib.catalog.get_copy_by_label("GATSBY-1")
    with pytest.raises(Conflict):
        lib.catalog.update_copy(copy.id, book_id=other.id)
    assert lib.catalog.get_copy(copy.id).book_id == gatsby.id

    spare = lib.catalog.get_copy_by_label("GATSBY-2")
    assert lib.catalog.update_copy(spare.id, book_id=other.id).book_id == other.id


def test_seed_is_idempotent(lib):
    first = seed_library(lib)
    assert first["books"] == len(SAMPLE_BOOKS) == 20
    assert first["copies"] == 29
    again = seed_library(lib)
    assert again == {"books": 0, "copies": 0, "users": 0}
    assert lib.catalog.get_copy_by_label("LOTR-3").available is True


def test_seed_creates_admin_when_password_given(lib):
    counts = seed_library(lib, admin_password="letmein")
    assert counts["users"] == 1
    assert lib.users.authenticate("admin", "letmein").is_admin
