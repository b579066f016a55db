from __future__ import annotations

from typing import Any, Dict, Optional


class Book:
    """A catalog title. Physical lendable items are tracked as Copy records."""

    def __init__(self, id: int, title: str, author: str, genre: str | None = None,
                 publication_date: str | None = None, description: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre
        self.publication_date = publication_date
        self.description = description
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (#{self.id})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "publicationDate": self.publication_date,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Book":
        return Book(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            genre=data.get("genre"),
            publication_date=data.get("publication_date"),
            description=data.get("description"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class Copy:
    """One lendable instance of a Book.

    ``label`` is the human readable identifier printed on the item (for example
    ``GATSBY-1``); it is unique across the whole catalog. On the wire it is
    exposed as ``copyId`` because that is the name the frontend uses.
    """

    def __init__(self, id: int, book_id: int, label: str, available: bool = True) -> None:
        self.id = id
        self.book_id = book_id
        self.label = label
        self.available = bool(available)

    def __str__(self) -> str:  # pragma: no cover
        state = "available" if self.available else "issued"
        return f"{self.label} ({state})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "copyId": self.label,
            "available": self.available,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Copy":
        return Copy(
            id=data["id"],
            book_id=data["book_id"],
            label=data["label"],
            available=bool(data["available"]),
        )


class Loan:
    """A borrowing record. Open while ``return_date`` is None."""

    def __init__(self, id: int, user_id: int, book_id: int, copy_pk: Optional[int],
                 issue_date: str, return_date: str | None = None, copy_label: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.book_id = book_id
        self.copy_pk = copy_pk
        self.copy_label = copy_label
        self.issue_date = issue_date
        self.return_date = return_date
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    @property
    def status(self) -> str:
        return "issued" if self.is_open else "returned"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "copyId": self.copy_label,
            "issueDate": self.issue_date,
            "returnDate": self.return_date,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Loan":
        return Loan(
            id=data["id"],
            user_id=data["user_id"],
            book_id=data["book_id"],
            copy_pk=data.get("copy_pk"),
            copy_label=data.get("copy_label"),
            issue_date=data["issue_date"],
            return_date=data.get("return_date"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class User:
    """A borrower or administrator. The password hash never leaves this object."""

    def __init__(self, id: int, name: str, username: str, email: str, password_hash: str,
                 role: str = "user", age: int | None = None, college: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.name = name
        self.username = username
        self.email = email
        self.password_hash = password_hash
        self.role = role
        self.age = age
        self.college = college
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "age": self.age,
            "college": self.college,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "User":
        return User(
            id=data["id"],
            name=data["name"],
            username=data["username"],
            email=data["email"],
            password_hash=data["password_hash"],
            role=data.get("role") or "user",
            age=data.get("age"),
            college=data.get("college"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
