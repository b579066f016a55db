import logging
import sqlite3
from typing import Any, Dict, List, Optional

from .database import connect, transaction, utc_now
from .errors import Conflict, InvalidArgument, NotFound
from .models import Book, Copy
from .validators import FieldValidator, TextValidator

logger = logging.getLogger(__name__)

BOOK_FIELDS = ("title", "author", "genre", "publication_date", "description")


class CatalogStore:
    """Books and their copies.

    Admin CRUD lives here. Copy availability is only ever changed through
    ``try_acquire_copy`` / ``release_copy``, which the issuance engine calls on
    its own transaction.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    # ------------------------- Books ------------------------- #
    def get_book(self, book_id: int, conn: Optional[sqlite3.Connection] = None) -> Book:
        if conn is not None:
            return self._get_book(conn, book_id)
        with connect(self.db_file) as conn:
            return self._get_book(conn, book_id)

    def list_books(self) -> List[Book]:
        with connect(self.db_file) as conn:
            rows = conn.execute("SELECT * FROM books ORDER BY title, id").fetchall()
            return [Book.from_dict(dict(row)) for row in rows]

    def create_book(self, fields: Dict[str, Any], copies: int = 0) -> Book:
        """Insert a book and, optionally, ``copies`` labelled copies in the same transaction.

        Labels follow the admin console convention ``TITLEWITHOUTSPACES-n``; numbering
        skips labels that already exist so re-adding a title never collides.
        """
        values = self._clean_book_fields(fields, partial=False)
        if copies < 0:
            raise InvalidArgument("copies must not be negative")
        now = utc_now()
        with connect(self.db_file) as conn:
            with transaction(conn):
                cursor = conn.execute(
                    "INSERT INTO books (title, author, genre, publication_date, description, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (values["title"], values["author"], values.get("genre"), values.get("publication_date"),
                     values.get("description"), now, now),
                )
                book_id = cursor.lastrowid
                prefix = TextValidator.label_prefix(values["title"])
                number = 0
                for _ in range(copies):
                    number += 1
                    while self._label_exists(conn, f"{prefix}-{number}"):
                        number += 1
                    conn.execute("INSERT INTO copies (book_id, label, available) VALUES (?, ?, 1)",
                                 (book_id, f"{prefix}-{number}"))
            logger.info(f"Book created: id={book_id}, title={values['title']!r}, copies={copies}")
            return self._get_book(conn, book_id)

    def update_book(self, book_id: int, fields: Dict[str, Any]) -> Book:
        values = self._clean_book_fields(fields, partial=True)
        with connect(self.db_file) as conn:
            with transaction(conn):
                self._get_book(conn, book_id)
                if values:
                    assignments = ", ".join(f"{name} = ?" for name in values)
                    conn.execute(
                        f"UPDATE books SET {assignments}, updated_at = ? WHERE id = ?",
                        (*values.values(), utc_now(), book_id),
                    )
            return self._get_book(conn, book_id)

    def delete_book(self, book_id: int) -> None:
        """Delete a book and its copies. Refused while any loan, open or returned, references it."""
        with connect(self.db_file) as conn:
            with transaction(conn):
                self._get_book(conn, book_id)
                loans = conn.execute(
                    "SELECT COUNT(*) FROM issued_books WHERE book_id = ?", (book_id,)
                ).fetchone()[0]
                if loans:
                    raise Conflict(f"Book has {loans} issued-book records; it cannot be deleted")
                conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info(f"Book deleted: id={book_id}")

    # ------------------------- Copies ------------------------- #
    def get_copy(self, copy_pk: int, conn: Optional[sqlite3.Connection] = None) -> Copy:
        if conn is not None:
            return self._get_copy(conn, copy_pk)
        with connect(self.db_file) as conn:
            return self._get_copy(conn, copy_pk)

    def get_copy_by_label(self, label: str, conn: Optional[sqlite3.Connection] = None) -> Copy:
        label = TextValidator.normalize_label(label)
        if conn is not None:
            return self._get_copy_by_label(conn, label)
        with connect(self.db_file) as conn:
            return self._get_copy_by_label(conn, label)

    def list_copies(self) -> List[Copy]:
        with connect(self.db_file) as conn:
            rows = conn.execute("SELECT * FROM copies ORDER BY label").fetchall()
            return [Copy.from_dict(dict(row)) for row in rows]

    def list_copies_for_book(self, book_id: int) -> List[Copy]:
        with connect(self.db_file) as conn:
            rows = conn.execute("SELECT * FROM copies WHERE book_id = ? ORDER BY label", (book_id,)).fetchall()
            return [Copy.from_dict(dict(row)) for row in rows]

    def create_copy(self, book_id: Any, label: Any) -> Copy:
        book_id = FieldValidator.parse_id(book_id, "bookId")
        label = TextValidator.normalize_label(label)
        with connect(self.db_file) as conn:
            with transaction(conn):
                self._get_book(conn, book_id)
                if self._label_exists(conn, label):
                    raise Conflict(f"Copy label {label} already exists")
                cursor = conn.execute("INSERT INTO copies (book_id, label, available) VALUES (?, ?, 1)",
                                      (book_id, label))
            logger.info(f"Copy created: {label} for book {book_id}")
            return self._get_copy(conn, cursor.lastrowid)

    def update_copy(self, copy_pk: int, label: Any = None, book_id: Any = None) -> Copy:
        """Re-label or re-assign a copy. A copy on loan can only change through the engine."""
        new_label = TextValidator.normalize_label(label) if label is not None else None
        new_book = FieldValidator.parse_id(book_id, "bookId") if book_id is not None else None
        with connect(self.db_file) as conn:
            with transaction(conn):
                copy = self._get_copy(conn, copy_pk)
                if not copy.available:
                    raise Conflict(f"Copy {copy.label} is currently issued and cannot be edited")
                if new_label is not None and new_label != copy.label:
                    if self._label_exists(conn, new_label):
                        raise Conflict(f"Copy label {new_label} already exists")
                    conn.execute("UPDATE copies SET label = ? WHERE id = ?", (new_label, copy_pk))
                if new_book is not None and new_book != copy.book_id:
                    self._get_book(conn, new_book)
                    # Past loans name the copy's current book; moving it would orphan them.
                    loans = conn.execute(
                        "SELECT COUNT(*) FROM issued_books WHERE copy_pk = ?", (copy_pk,)
                    ).fetchone()[0]
                    if loans:
                        raise Conflict(f"Copy {copy.label} has {loans} issued-book records; it cannot move books")
                    conn.execute("UPDATE copies SET book_id = ? WHERE id = ?", (new_book, copy_pk))
            return self._get_copy(conn, copy_pk)

    def delete_copy(self, copy_pk: int) -> None:
        with connect(self.db_file) as conn:
            with transaction(conn):
                copy = self._get_copy(conn, copy_pk)
                if not copy.available:
                    raise Conflict(f"Copy {copy.label} is currently issued and cannot be deleted")
                conn.execute("DELETE FROM copies WHERE id = ?", (copy_pk,))
        logger.info(f"Copy deleted: {copy.label}")

    # ------------------------- Availability gate ------------------------- #
    @staticmethod
    def try_acquire_copy(conn: sqlite3.Connection, copy_pk: int) -> bool:
        """Flip a copy to unavailable iff it is currently available.

        Single conditional UPDATE; the affected row count tells whether this caller won.
        Must run on the caller's open transaction.
        """
        cursor = conn.execute("UPDATE copies SET available = 0 WHERE id = ? AND available = 1", (copy_pk,))
        return cursor.rowcount == 1

    @staticmethod
    def release_copy(conn: sqlite3.Connection, copy_pk: Optional[int]) -> None:
        if copy_pk is None:
            return
        conn.execute("UPDATE copies SET available = 1 WHERE id = ?", (copy_pk,))

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _get_book(conn: sqlite3.Connection, book_id: int) -> Book:
        row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            raise NotFound("Book not found")
        return Book.from_dict(dict(row))

    @staticmethod
    def _get_copy(conn: sqlite3.Connection, copy_pk: int) -> Copy:
        row = conn.execute("SELECT * FROM copies WHERE id = ?", (copy_pk,)).fetchone()
        if row is None:
            raise NotFound("Copy not found")
        return Copy.from_dict(dict(row))

    @staticmethod
    def _get_copy_by_label(conn: sqlite3.Connection, label: str) -> Copy:
        row = conn.execute("SELECT * FROM copies WHERE label = ?", (label,)).fetchone()
        if row is None:
            raise NotFound("Copy not found")
        return Copy.from_dict(dict(row))

    @staticmethod
    def _label_exists(conn: sqlite3.Connection, label: str) -> bool:
        return conn.execute("SELECT 1 FROM copies WHERE label = ?", (label,)).fetchone() is not None

    @staticmethod
    def _clean_book_fields(fields: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        values = {}
        for name in BOOK_FIELDS:
            if name in fields:
                values[name] = TextValidator.clean_text(fields[name])
        if not partial:
            FieldValidator.require(values, ("title", "author"))
        else:
            for name in ("title", "author"):
                if name in values and values[name] is None:
                    raise InvalidArgument(f"{name} cannot be empty")
        return values
