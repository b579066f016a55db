"""Error taxonomy shared by the stores, the issuance engine and the handlers.

Each error subclasses the built-in exception the rest of the code base already
uses for the same meaning, so callers that catch ``ValueError`` or
``LookupError`` keep working.
"""


class LibraryError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(LibraryError, ValueError):
    """A required field is missing or malformed. Raised before any store access."""

    status_code = 400


class NotFound(LibraryError, LookupError):
    """A referenced book, copy, loan or user does not exist."""

    status_code = 404


class Conflict(LibraryError):
    """The operation would break copy exclusivity or a uniqueness rule."""

    status_code = 409


class StoreFailure(LibraryError):
    """The underlying database failed; any partial effect has been rolled back."""

    status_code = 500
