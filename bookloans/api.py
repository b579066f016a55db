import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, Depends, FastAPI, HTTPException, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from .config import settings
from .errors import LibraryError
from .library import Library

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

library: Optional[Library] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global library
    # The database file is resolved at startup so LIBRARY_DB_FILE can be set per process.
    library = Library()
    logger.info(f"{settings.app_name} started on database {library.db_file}")
    try:
        yield
    finally:
        library.close()
        library = None


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: Optional[str] = Security(api_key_header)):
    """Dependency guarding every mutating endpoint."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


def get_library() -> Library:
    if library is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return library


def _http_error(exc: LibraryError) -> HTTPException:
    """Translate a domain error into the HTTP status it stands for."""
    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc.message}")
    return HTTPException(status_code=exc.status_code, detail=exc.message)


# --- Models ---
IdField = Union[int, str, None]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IssueModel(_CamelModel):
    user_id: IdField = Field(default=None, alias="userId")
    book_id: IdField = Field(default=None, alias="bookId")
    copy_id: Optional[str] = Field(default=None, alias="copyId", description="Copy label, e.g. GATSBY-1")
    issue_date: Optional[str] = Field(default=None, alias="issueDate")
    # Accepted for compatibility with the frontend form; a new loan is always open.
    return_date: Optional[str] = Field(default=None, alias="returnDate")


class LoanUpdateModel(_CamelModel):
    user_id: IdField = Field(default=None, alias="userId")
    book_id: IdField = Field(default=None, alias="bookId")
    copy_id: Optional[str] = Field(default=None, alias="copyId")
    issue_date: Optional[str] = Field(default=None, alias="issueDate")
    return_date: Optional[str] = Field(default=None, alias="returnDate")


class ReturnModel(_CamelModel):
    return_date: Optional[str] = Field(default=None, alias="returnDate")


class BookCreateModel(_CamelModel):
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    publication_date: Union[str, int, None] = Field(default=None, alias="publicationDate")
    description: Optional[str] = None
    copies: int = Field(default=0, description="Number of labelled copies to create with the book")


class BookUpdateModel(_CamelModel):
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    publication_date: Union[str, int, None] = Field(default=None, alias="publicationDate")
    description: Optional[str] = None


class CopyCreateModel(_CamelModel):
    book_id: IdField = Field(default=None, alias="bookId")
    copy_id: Optional[str] = Field(default=None, alias="copyId")


class CopyUpdateModel(_CamelModel):
    book_id: IdField = Field(default=None, alias="bookId")
    copy_id: Optional[str] = Field(default=None, alias="copyId")
    available: Optional[bool] = None


class UserCreateModel(_CamelModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    age: Union[int, str, None] = None
    college: Optional[str] = None
    role: Optional[str] = None


class UserUpdateModel(UserCreateModel):
    pass


class RegisterModel(_CamelModel):
    # no role: self-registration always creates a plain user
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    age: Union[int, str, None] = None
    college: Optional[str] = None


class LoginModel(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    """Lightweight health check: confirms the database answers."""
    try:
        db_ok = lib.ping()
    except sqlite3.Error as e:
        logger.error(f"Health check could not reach the database: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "version": settings.app_version,
        "environment": settings.environment,
    }


# --- Issued books ---
@app.get("/issuedBooks")
def list_issued_books(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    try:
        return [loan.to_dict() for loan in lib.engine.list_loans()]
    except LibraryError as e:
        raise _http_error(e)


@app.get("/issuedBooks/{loan_id}")
def get_issued_book(loan_id: int, lib: Library = Depends(get_library)):
    """A single loan with short summaries of its borrower and book."""
    try:
        loan = lib.engine.get_loan(loan_id)
        user = lib.users.get_user(loan.user_id)
        book = lib.catalog.get_book(loan.book_id)
    except LibraryError as e:
        raise _http_error(e)
    payload = loan.to_dict()
    payload["user"] = {"id": user.id, "username": user.username, "email": user.email}
    payload["book"] = {"id": book.id, "title": book.title, "author": book.author}
    return payload


@app.post("/issuedBooks", status_code=201, dependencies=[Depends(get_api_key)])
def issue_book(payload: IssueModel, lib: Library = Depends(get_library)):
    """Issue a copy to a user."""
    try:
        loan_id = lib.engine.issue_copy(payload.user_id, payload.book_id, payload.copy_id, payload.issue_date)
    except LibraryError as e:
        raise _http_error(e)
    return {"id": loan_id, "message": "Book copy issued successfully"}


@app.put("/issuedBooks/{loan_id}", dependencies=[Depends(get_api_key)])
def update_issued_book(loan_id: int, payload: LoanUpdateModel, lib: Library = Depends(get_library)):
    """Correct a loan. Keys left out of the body are unchanged; ``returnDate: null`` reopens it."""
    patch = payload.model_dump(by_alias=True, exclude_unset=True)
    try:
        loan = lib.engine.edit_loan(loan_id, patch)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "Issued book updated", "issuedBook": loan.to_dict()}


@app.post("/issuedBooks/{loan_id}/return", dependencies=[Depends(get_api_key)])
def return_issued_book(loan_id: int, payload: Optional[ReturnModel] = Body(default=None),
                       lib: Library = Depends(get_library)):
    return_date = payload.return_date if payload else None
    try:
        loan = lib.engine.return_copy(loan_id, return_date)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "Book returned", "issuedBook": loan.to_dict()}


@app.delete("/issuedBooks/{loan_id}", dependencies=[Depends(get_api_key)])
def delete_issued_book(loan_id: int, lib: Library = Depends(get_library)):
    try:
        lib.engine.delete_loan(loan_id)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "Issued book deleted (book returned)"}


@app.get("/users/{user_id}/issuedBooks")
def list_user_issued_books(user_id: int, lib: Library = Depends(get_library)):
    try:
        return [loan.to_dict() for loan in lib.engine.list_loans_for_user(user_id)]
    except LibraryError as e:
        raise _http_error(e)


# --- Books ---
@app.get("/books")
def list_books(lib: Library = Depends(get_library)):
    try:
        return [book.to_dict() for book in lib.catalog.list_books()]
    except LibraryError as e:
        raise _http_error(e)


@app.get("/books/{book_id}")
def get_book(book_id: int, lib: Library = Depends(get_library)):
    try:
        book = lib.catalog.get_book(book_id)
        copies = lib.catalog.list_copies_for_book(book_id)
    except LibraryError as e:
        raise _http_error(e)
    payload = book.to_dict()
    payload["copies"] = [copy.to_dict() for copy in copies]
    return payload


@app.post("/books", status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
    fields = payload.model_dump(exclude={"copies"}, exclude_unset=True)
    try:
        book = lib.catalog.create_book(fields, copies=payload.copies)
    except LibraryError as e:
        raise _http_error(e)
    return book.to_dict()


@app.put("/books/{book_id}", dependencies=[Depends(get_api_key)])
def update_book(book_id: int, payload: BookUpdateModel, lib: Library = Depends(get_library)):
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Provide at least one field to update")
    try:
        book = lib.catalog.update_book(book_id, fields)
    except LibraryError as e:
        raise _http_error(e)
    return book.to_dict()


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: int, lib: Library = Depends(get_library)):
    try:
        lib.catalog.delete_book(book_id)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "Book deleted successfully"}


# --- Copies ---
@app.get("/copies")
def list_copies(lib: Library = Depends(get_library)):
    try:
        return [copy.to_dict() for copy in lib.catalog.list_copies()]
    except LibraryError as e:
        raise _http_error(e)


@app.get("/copies/book/{book_id}")
def list_copies_for_book(book_id: int, lib: Library = Depends(get_library)):
    try:
        lib.catalog.get_book(book_id)
        return [copy.to_dict() for copy in lib.catalog.list_copies_for_book(book_id)]
    except LibraryError as e:
        raise _http_error(e)


@app.post("/copies", status_code=201, dependencies=[Depends(get_api_key)])
def add_copy(payload: CopyCreateModel, lib: Library = Depends(get_library)):
    try:
        copy = lib.catalog.create_copy(payload.book_id, payload.copy_id)
    except LibraryError as e:
        raise _http_error(e)
    return copy.to_dict()


@app.put("/copies/{copy_pk}", dependencies=[Depends(get_api_key)])
def update_copy(copy_pk: int, payload: CopyUpdateModel, lib: Library = Depends(get_library)):
    """Re-label a copy or move it to another book. Availability follows loans only."""
    if payload.available is not None:
        raise HTTPException(status_code=400, detail="available is managed by issuing and returning copies")
    try:
        copy = lib.catalog.update_copy(copy_pk, label=payload.copy_id, book_id=payload.book_id)
    except LibraryError as e:
        raise _http_error(e)
    return copy.to_dict()


@app.delete("/copies/{copy_pk}", dependencies=[Depends(get_api_key)])
def delete_copy(copy_pk: int, lib: Library = Depends(get_library)):
    try:
        lib.catalog.delete_copy(copy_pk)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "Copy deleted"}


# --- Users ---
@app.get("/users")
def list_users(lib: Library = Depends(get_library)):
    try:
        return [user.to_dict() for user in lib.users.list_users()]
    except LibraryError as e:
        raise _http_error(e)


@app.get("/users/{user_id}")
def get_user(user_id: int, lib: Library = Depends(get_library)):
    try:
        return lib.users.get_user(user_id).to_dict()
    except LibraryError as e:
        raise _http_error(e)


@app.post("/users", status_code=201, dependencies=[Depends(get_api_key)])
def add_user(payload: UserCreateModel, lib: Library = Depends(get_library)):
    try:
        user = lib.users.create_user(payload.model_dump(exclude_unset=True))
    except LibraryError as e:
        raise _http_error(e)
    return {"id": user.id, "message": "User created"}


@app.put("/users/{user_id}", dependencies=[Depends(get_api_key)])
def update_user(user_id: int, payload: UserUpdateModel, lib: Library = Depends(get_library)):
    try:
        user = lib.users.update_user(user_id, payload.model_dump(exclude_unset=True))
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "User updated", "user": user.to_dict()}


@app.delete("/users/{user_id}", dependencies=[Depends(get_api_key)])
def delete_user(user_id: int, lib: Library = Depends(get_library)):
    try:
        lib.users.delete_user(user_id)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "User deleted"}


@app.post("/users/login")
def login(payload: LoginModel, lib: Library = Depends(get_library)):
    try:
        user = lib.users.authenticate(payload.username, payload.password)
    except LibraryError as e:
        raise _http_error(e)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"success": True, "user": user.to_dict()}


@app.post("/register", status_code=201)
def register(payload: RegisterModel, lib: Library = Depends(get_library)):
    """Public self-registration. Any role sent by the client is ignored."""
    fields = payload.model_dump(exclude_unset=True)
    fields["role"] = "user"
    try:
        user = lib.users.create_user(fields)
    except LibraryError as e:
        raise _http_error(e)
    return {"message": "User registered successfully", "userId": user.id}
