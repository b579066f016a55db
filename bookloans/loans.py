import sqlite3
from typing import Any, Dict, List, Optional

from .database import connect, utc_now
from .errors import NotFound
from .models import Loan

# Loans carry the copy's primary key; the label is joined in for display.
_SELECT_LOANS = """
    SELECT issued_books.*, copies.label AS copy_label
    FROM issued_books
    LEFT JOIN copies ON copies.id = issued_books.copy_pk
"""

LOAN_COLUMNS = ("user_id", "book_id", "copy_pk", "issue_date", "return_date")


class LoanStore:
    """Persistence for IssuedBook (loan) rows.

    Write methods take the caller's connection so the issuance engine can put
    the loan write and the copy availability write in one transaction.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def create_loan(self, conn: sqlite3.Connection, fields: Dict[str, Any]) -> int:
        now = utc_now()
        cursor = conn.execute(
            "INSERT INTO issued_books (user_id, book_id, copy_pk, issue_date, return_date, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (fields["user_id"], fields["book_id"], fields["copy_pk"], fields["issue_date"],
             fields.get("return_date"), now, now),
        )
        return cursor.lastrowid

    def get_loan(self, loan_id: int, conn: Optional[sqlite3.Connection] = None) -> Loan:
        if conn is not None:
            return self._get_loan(conn, loan_id)
        with connect(self.db_file) as conn:
            return self._get_loan(conn, loan_id)

    def update_loan(self, conn: sqlite3.Connection, loan_id: int, fields: Dict[str, Any]) -> Loan:
        values = {name: fields[name] for name in LOAN_COLUMNS if name in fields}
        if values:
            assignments = ", ".join(f"{name} = ?" for name in values)
            cursor = conn.execute(
                f"UPDATE issued_books SET {assignments}, updated_at = ? WHERE id = ?",
                (*values.values(), utc_now(), loan_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Issued book not found")
        return self._get_loan(conn, loan_id)

    def delete_loan(self, conn: sqlite3.Connection, loan_id: int) -> None:
        cursor = conn.execute("DELETE FROM issued_books WHERE id = ?", (loan_id,))
        if cursor.rowcount == 0:
            raise NotFound("Issued book not found")

    def list_loans(self) -> List[Loan]:
        with connect(self.db_file) as conn:
            rows = conn.execute(_SELECT_LOANS + " ORDER BY issued_books.id").fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]

    def list_loans_by_user(self, user_id: int) -> List[Loan]:
        with connect(self.db_file) as conn:
            rows = conn.execute(
                _SELECT_LOANS + " WHERE issued_books.user_id = ? ORDER BY issued_books.id", (user_id,)
            ).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]

    def list_loans_by_copy_label(self, label: str) -> List[Loan]:
        with connect(self.db_file) as conn:
            rows = conn.execute(
                _SELECT_LOANS + " WHERE copies.label = ? ORDER BY issued_books.id", (label,)
            ).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]

    def count_open_loans_for_copy(self, copy_pk: int) -> int:
        with connect(self.db_file) as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM issued_books WHERE copy_pk = ? AND return_date IS NULL", (copy_pk,)
            ).fetchone()[0]

    @staticmethod
    def _get_loan(conn: sqlite3.Connection, loan_id: int) -> Loan:
        row = conn.execute(_SELECT_LOANS + " WHERE issued_books.id = ?", (loan_id,)).fetchone()
        if row is None:
            raise NotFound("Issued book not found")
        return Loan.from_dict(dict(row))
