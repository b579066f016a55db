"""Issuance engine: the only code path that changes a copy's availability.

Every operation keeps this invariant::

    copy.available is False  <=>  exactly one loan on that copy has return_date NULL

Each mutation runs as one ``BEGIN IMMEDIATE`` transaction. Acquiring a copy is
a conditional UPDATE whose row count decides the winner, so two concurrent
issues of the same copy can never both succeed. Input is validated before the
database is touched.
"""

import logging
from typing import Any, Dict, List, Optional

from .catalog import CatalogStore
from .database import connect, transaction
from .errors import Conflict, InvalidArgument
from .loans import LoanStore
from .models import Loan
from .users import UserStore
from .validators import DateValidator, FieldValidator, TextValidator

logger = logging.getLogger(__name__)

ALREADY_ISSUED = "Copy is already issued"


class IssuanceEngine:
    def __init__(self, catalog: CatalogStore, loans: LoanStore, users: UserStore,
                 db_file: Optional[str] = None) -> None:
        self.catalog = catalog
        self.loans = loans
        self.users = users
        self.db_file = db_file

    # ------------------------- Issue ------------------------- #
    def issue_copy(self, user_id: Any, book_id: Any, copy_label: Any, issue_date: Any) -> int:
        """Lend the copy labelled ``copy_label`` to ``user_id``. Returns the new loan id.

        Raises InvalidArgument for missing/malformed input, NotFound when the copy,
        user or book does not exist, and Conflict when the copy is already out.
        """
        FieldValidator.require(
            {"userId": user_id, "bookId": book_id, "copyId": copy_label, "issueDate": issue_date},
            ("userId", "bookId", "copyId", "issueDate"),
        )
        user_id = FieldValidator.parse_id(user_id, "userId")
        book_id = FieldValidator.parse_id(book_id, "bookId")
        label = TextValidator.normalize_label(copy_label)
        issue_date = DateValidator.parse_date(issue_date, "issueDate")

        with connect(self.db_file) as conn:
            with transaction(conn):
                copy = self.catalog.get_copy_by_label(label, conn=conn)
                self.users.get_user(user_id, conn=conn)
                self.catalog.get_book(book_id, conn=conn)
                if copy.book_id != book_id:
                    raise InvalidArgument(f"Copy {label} belongs to book {copy.book_id}, not {book_id}")
                if not self.catalog.try_acquire_copy(conn, copy.id):
                    logger.warning(f"Issue rejected: copy {label} is already issued (user={user_id})")
                    raise Conflict(ALREADY_ISSUED)
                loan_id = self.loans.create_loan(conn, {
                    "user_id": user_id,
                    "book_id": book_id,
                    "copy_pk": copy.id,
                    "issue_date": issue_date,
                    "return_date": None,
                })
        logger.info(f"Copy issued: loan={loan_id}, copy={label}, user={user_id}, date={issue_date}")
        return loan_id

    # ------------------------- Return / delete ------------------------- #
    def return_copy(self, loan_id: Any, return_date: Any = None) -> Loan:
        """Close a loan and make its copy available again.

        Returning a loan that is already closed is a no-op; the stored return date is kept.
        """
        loan_id = FieldValidator.parse_id(loan_id, "id")
        return_date = DateValidator.parse_optional_date(return_date, "returnDate") or DateValidator.today()

        with connect(self.db_file) as conn:
            with transaction(conn):
                loan = self.loans.get_loan(loan_id, conn=conn)
                if not loan.is_open:
                    logger.info(f"Return ignored: loan {loan_id} already returned on {loan.return_date}")
                    return loan
                loan = self.loans.update_loan(conn, loan_id, {"return_date": return_date})
                self.catalog.release_copy(conn, loan.copy_pk)
        logger.info(f"Copy returned: loan={loan_id}, copy={loan.copy_label}, date={return_date}")
        return loan

    def delete_loan(self, loan_id: Any) -> None:
        """Hard-delete a loan record. If it was still open, its copy becomes available."""
        loan_id = FieldValidator.parse_id(loan_id, "id")
        with connect(self.db_file) as conn:
            with transaction(conn):
                loan = self.loans.get_loan(loan_id, conn=conn)
                self.loans.delete_loan(conn, loan_id)
                # A closed loan's copy may already be out on a newer loan; leave it alone.
                if loan.is_open:
                    self.catalog.release_copy(conn, loan.copy_pk)
        logger.info(f"Loan deleted: loan={loan_id}, copy={loan.copy_label}, was_open={loan.is_open}")

    # ------------------------- Edit ------------------------- #
    def edit_loan(self, loan_id: Any, patch: Dict[str, Any]) -> Loan:
        """Administrative correction of a loan.

        ``patch`` uses wire names (userId, bookId, copyId, issueDate, returnDate).
        Absent keys are left alone; ``returnDate: None`` reopens a closed loan.
        """
        loan_id = FieldValidator.parse_id(loan_id, "id")
        changes = self._parse_patch(patch)

        with connect(self.db_file) as conn:
            with transaction(conn):
                loan = self.loans.get_loan(loan_id, conn=conn)

                if "user_id" in changes and changes["user_id"] != loan.user_id:
                    self.users.get_user(changes["user_id"], conn=conn)

                target_book = changes.get("book_id", loan.book_id)
                if target_book != loan.book_id:
                    self.catalog.get_book(target_book, conn=conn)

                target_copy_pk = loan.copy_pk
                if "copy_label" in changes:
                    new_copy = self.catalog.get_copy_by_label(changes.pop("copy_label"), conn=conn)
                    target_copy_pk = new_copy.id
                    if new_copy.book_id != target_book:
                        raise InvalidArgument(
                            f"Copy {new_copy.label} belongs to book {new_copy.book_id}, not {target_book}"
                        )
                elif target_book != loan.book_id and loan.copy_pk is not None:
                    held = self.catalog.get_copy(loan.copy_pk, conn=conn)
                    if held.book_id != target_book:
                        raise InvalidArgument(f"Copy {held.label} belongs to book {held.book_id}, not {target_book}")
                was_open = loan.is_open
                will_be_open = changes["return_date"] is None if "return_date" in changes else was_open
                copy_changed = target_copy_pk != loan.copy_pk

                # A closed loan may outlive its copy; only an open loan needs one.
                if target_copy_pk is None and will_be_open:
                    raise InvalidArgument("copyId is required: the copy for this loan no longer exists")
                if copy_changed:
                    changes["copy_pk"] = target_copy_pk

                if was_open and will_be_open and copy_changed:
                    # Move the claim: take the new copy first, then free the old one.
                    self._acquire_or_conflict(conn, target_copy_pk, loan_id)
                    self.catalog.release_copy(conn, loan.copy_pk)
                elif was_open and not will_be_open:
                    self.catalog.release_copy(conn, loan.copy_pk)
                elif not was_open and will_be_open:
                    self._acquire_or_conflict(conn, target_copy_pk, loan_id)

                loan = self.loans.update_loan(conn, loan_id, changes)
        logger.info(f"Loan edited: loan={loan_id}, open={loan.is_open}, copy={loan.copy_label}")
        return loan

    # ------------------------- Reads ------------------------- #
    def get_loan(self, loan_id: Any) -> Loan:
        return self.loans.get_loan(FieldValidator.parse_id(loan_id, "id"))

    def list_loans(self) -> List[Loan]:
        return self.loans.list_loans()

    def list_loans_for_user(self, user_id: Any) -> List[Loan]:
        user_id = FieldValidator.parse_id(user_id, "userId")
        self.users.get_user(user_id)
        return self.loans.list_loans_by_user(user_id)

    def list_loans_for_copy(self, copy_label: Any) -> List[Loan]:
        copy = self.catalog.get_copy_by_label(copy_label)
        return self.loans.list_loans_by_copy_label(copy.label)

    # ------------------------- Helpers ------------------------- #
    def _acquire_or_conflict(self, conn, copy_pk: int, loan_id: int) -> None:
        if not self.catalog.try_acquire_copy(conn, copy_pk):
            copy = self.catalog.get_copy(copy_pk, conn=conn)
            logger.warning(f"Edit rejected: copy {copy.label} is already issued (loan={loan_id})")
            raise Conflict(ALREADY_ISSUED)

    @staticmethod
    def _parse_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if patch.get("userId") is not None:
            changes["user_id"] = FieldValidator.parse_id(patch["userId"], "userId")
        if patch.get("bookId") is not None:
            changes["book_id"] = FieldValidator.parse_id(patch["bookId"], "bookId")
        if patch.get("copyId") is not None:
            changes["copy_label"] = TextValidator.normalize_label(patch["copyId"])
        if patch.get("issueDate") is not None:
            changes["issue_date"] = DateValidator.parse_date(patch["issueDate"], "issueDate")
        if "returnDate" in patch:
            changes["return_date"] = DateValidator.parse_optional_date(patch["returnDate"], "returnDate")
        return changes
