"""User directory.

Users are outside the issuance core; the engine only needs ``get_user`` to
confirm a borrower exists. Admin CRUD and a credential check are provided for
the HTTP layer. Passwords are stored as bcrypt hashes.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from passlib.context import CryptContext

from .database import connect, transaction, utc_now
from .errors import Conflict, InvalidArgument, NotFound
from .models import User
from .validators import FieldValidator, TextValidator

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
PROFILE_FIELDS = ("name", "username", "email", "age", "college")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, encoded: str) -> bool:
    try:
        return pwd_context.verify(password, encoded)
    except ValueError:
        # stored value is not a hash passlib recognises
        logger.warning("Password check against an unrecognised hash format")
        return False


class UserStore:
    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def get_user(self, user_id: int, conn: Optional[sqlite3.Connection] = None) -> User:
        if conn is not None:
            return self._get_user(conn, user_id)
        with connect(self.db_file) as conn:
            return self._get_user(conn, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with connect(self.db_file) as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username.strip(),)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def list_users(self) -> List[User]:
        with connect(self.db_file) as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
            return [User.from_dict(dict(row)) for row in rows]

    def create_user(self, fields: Dict[str, Any]) -> User:
        FieldValidator.require(fields, ("name", "username", "email", "password"))
        role = TextValidator.validate_role(fields.get("role"))
        age = FieldValidator.parse_optional_int(fields.get("age"), "age")
        now = utc_now()
        with connect(self.db_file) as conn:
            with transaction(conn):
                self._ensure_unique(conn, fields["username"].strip(), fields["email"].strip())
                cursor = conn.execute(
                    "INSERT INTO users (name, username, email, password_hash, role, age, college, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (fields["name"].strip(), fields["username"].strip(), fields["email"].strip(),
                     hash_password(fields["password"]), role, age, TextValidator.clean_text(fields.get("college")),
                     now, now),
                )
            logger.info(f"User created: id={cursor.lastrowid}, username={fields['username'].strip()!r}")
            return self._get_user(conn, cursor.lastrowid)

    def update_user(self, user_id: int, fields: Dict[str, Any]) -> User:
        values: Dict[str, Any] = {}
        for name in PROFILE_FIELDS:
            if name not in fields:
                continue
            if name == "age":
                values[name] = FieldValidator.parse_optional_int(fields[name], "age")
            elif name in ("name", "username", "email"):
                if FieldValidator.is_blank(fields[name]):
                    raise InvalidArgument(f"{name} cannot be empty")
                values[name] = str(fields[name]).strip()
            else:
                values[name] = TextValidator.clean_text(fields[name])
        if "role" in fields:
            values["role"] = TextValidator.validate_role(fields["role"])
        if not FieldValidator.is_blank(fields.get("password")):
            values["password_hash"] = hash_password(fields["password"])

        with connect(self.db_file) as conn:
            with transaction(conn):
                self._get_user(conn, user_id)
                self._ensure_unique(conn, values.get("username"), values.get("email"), exclude_id=user_id)
                if values:
                    assignments = ", ".join(f"{name} = ?" for name in values)
                    conn.execute(f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                                 (*values.values(), utc_now(), user_id))
            return self._get_user(conn, user_id)

    def delete_user(self, user_id: int) -> None:
        """Delete a user and their loan history. Refused while they still hold a copy."""
        with connect(self.db_file) as conn:
            with transaction(conn):
                self._get_user(conn, user_id)
                open_loans = conn.execute(
                    "SELECT COUNT(*) FROM issued_books WHERE user_id = ? AND return_date IS NULL", (user_id,)
                ).fetchone()[0]
                if open_loans:
                    raise Conflict(f"User has {open_loans} issued books; return them before deleting")
                conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        logger.info(f"User deleted: id={user_id}")

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user if the credentials match, else None."""
        if FieldValidator.is_blank(username) or FieldValidator.is_blank(password):
            return None
        user = self.get_user_by_username(username)
        if user and verify_password(password, user.password_hash):
            return user
        return None

    @staticmethod
    def _get_user(conn: sqlite3.Connection, user_id: int) -> User:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFound("User not found")
        return User.from_dict(dict(row))

    @staticmethod
    def _ensure_unique(conn: sqlite3.Connection, username: Optional[str], email: Optional[str],
                       exclude_id: Optional[int] = None) -> None:
        for column, value in (("username", username), ("email", email)):
            if value is None:
                continue
            row = conn.execute(f"SELECT id FROM users WHERE {column} = ?", (value,)).fetchone()
            if row is not None and row["id"] != exclude_id:
                raise Conflict(f"{column.capitalize()} {value!r} is already registered")
