"""Sample catalog for demos and local development.

``seed_library`` is idempotent: titles that already exist (same title and
author) and labels that are already taken are skipped, so running it twice
leaves the catalog unchanged.
"""

import logging
from typing import Dict, List, Optional

from .config import settings
from .library import Library

logger = logging.getLogger(__name__)

SAMPLE_BOOKS: List[Dict[str, object]] = [
    {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "genre": "Classic", "publication_date": "1925",
     "description": "A novel about the American dream and the amazing twenties.",
     "copies": ["GATSBY-1", "GATSBY-2"]},
    {"title": "1984", "author": "George Orwell", "genre": "Dystopian", "publication_date": "1949",
     "description": "A dystopian social science fiction novel and cautionary tale about totalitarianism.",
     "copies": ["1984-1", "1984-2"]},
    {"title": "To Kill a Mockingbird", "author": "Harper Lee", "genre": "Classic", "publication_date": "1960",
     "description": "A novel about racial injustice in the Deep South.",
     "copies": ["TKAM-1"]},
    {"title": "The Catcher in the Rye", "author": "J.D. Salinger", "genre": "Classic", "publication_date": "1951",
     "description": "A story about teenage rebellion and alienation.",
     "copies": ["CATCHER-1"]},
    {"title": "Pride and Prejudice", "author": "Jane Austen", "genre": "Romance", "publication_date": "1813",
     "description": "A romantic novel that critiques the British landed gentry at the end of the 18th century.",
     "copies": ["PRIDE-1"]},
    {"title": "Moby Dick", "author": "Herman Melville", "genre": "Adventure", "publication_date": "1851",
     "description": "The narrative of Captain Ahab's obsessive quest to kill the white whale.",
     "copies": ["MOBY-1"]},
    {"title": "War and Peace", "author": "Leo Tolstoy", "genre": "Historical", "publication_date": "1869",
     "description": "A novel that chronicles the French invasion of Russia and its impact on society.",
     "copies": ["WARPEACE-1", "WARPEACE-2"]},
    {"title": "The Hobbit", "author": "J.R.R. Tolkien", "genre": "Fantasy", "publication_date": "1937",
     "description": "A fantasy novel about Bilbo Baggins' adventure.",
     "copies": ["HOBBIT-1", "HOBBIT-2"]},
    {"title": "Brave New World", "author": "Aldous Huxley", "genre": "Dystopian", "publication_date": "1932",
     "description": "A dystopian novel exploring futuristic society and technology.",
     "copies": ["BRAVE-1"]},
    {"title": "Crime and Punishment", "author": "Fyodor Dostoevsky", "genre": "Psychological",
     "publication_date": "1866", "description": "A novel about morality, guilt, and redemption.",
     "copies": ["CRIME-1"]},
    {"title": "The Alchemist", "author": "Paulo Coelho", "genre": "Philosophical", "publication_date": "1988",
     "description": "A philosophical book about following your dreams.",
     "copies": ["ALCHEMIST-1", "ALCHEMIST-2"]},
    {"title": "The Lord of the Rings", "author": "J.R.R. Tolkien", "genre": "Fantasy", "publication_date": "1954",
     "description": "An epic high fantasy novel.",
     "copies": ["LOTR-1", "LOTR-2", "LOTR-3"]},
    {"title": "Fahrenheit 451", "author": "Ray Bradbury", "genre": "Dystopian", "publication_date": "1953",
     "description": "A novel about censorship and the suppression of ideas.",
     "copies": ["FAHRENHEIT-1"]},
    {"title": "Jane Eyre", "author": "Charlotte Brontë", "genre": "Romance", "publication_date": "1847",
     "description": "A novel about the experiences of the titular character, including her growth to adulthood.",
     "copies": ["JANE-1"]},
    {"title": "Animal Farm", "author": "George Orwell", "genre": "Political Satire", "publication_date": "1945",
     "description": "An allegorical novella criticizing totalitarian regimes.",
     "copies": ["ANIMAL-1", "ANIMAL-2"]},
    {"title": "The Da Vinci Code", "author": "Dan Brown", "genre": "Thriller", "publication_date": "2003",
     "description": "A mystery thriller novel.",
     "copies": ["DAVINCI-1"]},
    {"title": "The Kite Runner", "author": "Khaled Hosseini", "genre": "Drama", "publication_date": "2003",
     "description": "A story of friendship and redemption in Afghanistan.",
     "copies": ["KITE-1"]},
    {"title": "A Tale of Two Cities", "author": "Charles Dickens", "genre": "Historical", "publication_date": "1859",
     "description": "A novel set in London and Paris before and during the French Revolution.",
     "copies": ["TALE-1"]},
    {"title": "The Shining", "author": "Stephen King", "genre": "Horror", "publication_date": "1977",
     "description": "A horror novel about a haunted hotel.",
     "copies": ["SHINING-1"]},
    {"title": "The Hunger Games", "author": "Suzanne Collins", "genre": "Dystopian", "publication_date": "2008",
     "description": "A dystopian novel about survival and rebellion.",
     "copies": ["HUNGER-1", "HUNGER-2"]},
]


def seed_library(lib: Library, admin_password: Optional[str] = None) -> Dict[str, int]:
    """Insert the sample books and copies; optionally create an admin account.

    Returns counts of what was actually inserted.
    """
    existing_books = {(b.title, b.author): b for b in lib.catalog.list_books()}
    existing_labels = {c.label for c in lib.catalog.list_copies()}
    books_added = copies_added = users_added = 0

    for entry in SAMPLE_BOOKS:
        fields = {k: v for k, v in entry.items() if k != "copies"}
        book = existing_books.get((entry["title"], entry["author"]))
        if book is None:
            book = lib.catalog.create_book(fields)
            books_added += 1
        for label in entry["copies"]:
            if label in existing_labels:
                continue
            lib.catalog.create_copy(book.id, label)
            existing_labels.add(label)
            copies_added += 1

    admin_password = admin_password or settings.seed_admin_password
    if admin_password and lib.users.get_user_by_username(settings.seed_admin_username) is None:
        lib.users.create_user({
            "name": "Administrator",
            "username": settings.seed_admin_username,
            "email": f"{settings.seed_admin_username}@library.local",
            "password": admin_password,
            "role": "admin",
        })
        users_added += 1

    logger.info(f"Seed complete: {books_added} books, {copies_added} copies, {users_added} users added")
    return {"books": books_added, "copies": copies_added, "users": users_added}
