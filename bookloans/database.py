import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from dotenv import load_dotenv

from .config import settings
from .errors import StoreFailure

# Make sure .env is loaded before LIBRARY_DB_FILE is read below.
load_dotenv()

logger = logging.getLogger(__name__)


def default_db_file() -> str:
    """Database file to use when a caller does not pass one.

    LIBRARY_DB_FILE is read on every call (not once at import) so tests and the
    CLI can point a fresh Library at a different file.
    """
    return os.environ.get("LIBRARY_DB_FILE") or settings.database_file


def utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection in autocommit mode; multi-statement work goes through transaction()."""
    conn = sqlite3.connect(
        db_file or default_db_file(),
        timeout=settings.database_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside BEGIN IMMEDIATE ... COMMIT, rolling back on any exception.

    BEGIN IMMEDIATE takes the database write lock up front, so two writers never
    interleave their read-check-write sequences.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


@contextmanager
def connect(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Connection scoped to a block. sqlite3.Error is surfaced as StoreFailure."""
    conn = None
    try:
        conn = get_db_connection(db_file)
        yield conn
    except sqlite3.Error as exc:
        logger.error(f"Database error: {exc}")
        raise StoreFailure("Database operation failed") from exc
    finally:
        if conn is not None:
            conn.close()


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the schema if it does not exist yet."""
    conn = get_db_connection(db_file)
    try:
        # WAL lets readers proceed while a writer holds the lock
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                username TEXT NOT NULL UNIQUE,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'user' CHECK(role IN ('user', 'admin')),
                age INTEGER,
                college TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT,
                publication_date TEXT,
                description TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS copies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL,
                label TEXT NOT NULL UNIQUE,
                available INTEGER NOT NULL DEFAULT 1 CHECK(available IN (0, 1)),
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS issued_books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                book_id INTEGER NOT NULL,
                copy_pk INTEGER,
                issue_date TEXT NOT NULL,
                return_date TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE RESTRICT,
                FOREIGN KEY (copy_pk) REFERENCES copies(id) ON DELETE SET NULL
            );

            CREATE INDEX IF NOT EXISTS idx_copies_book_id ON copies(book_id);
            CREATE INDEX IF NOT EXISTS idx_issued_books_user_id ON issued_books(user_id);
            CREATE INDEX IF NOT EXISTS idx_issued_books_copy_pk ON issued_books(copy_pk);

            -- At most one open loan per copy, enforced by the engine and backed here.
            CREATE UNIQUE INDEX IF NOT EXISTS idx_issued_books_open_copy
                ON issued_books(copy_pk) WHERE return_date IS NULL;
        """)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialise the database, creating tables if needed."""
    create_tables(db_file)
    logger.debug(f"Database ready at {db_file or default_db_file()}")
