"""Failures raised by the catalog, directory, ledger and loan service.

Every failure is recoverable at the request boundary. The HTTP layer and the
CLI map each kind to its own status so callers can tell "try another book"
apart from "retry later".
"""


class LibraryError(Exception):
    """Base class for all lending failures."""


class BookNotFound(LibraryError, LookupError):
    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} not found.")
        self.book_id = book_id


class ReaderNotFound(LibraryError, LookupError):
    def __init__(self, reader_id: int) -> None:
        super().__init__(f"Reader {reader_id} not found.")
        self.reader_id = reader_id


class LoanNotFound(LibraryError, LookupError):
    """No loan with this id is currently borrowed (never existed or already returned)."""

    def __init__(self, record_id: int, message: str | None = None) -> None:
        super().__init__(message or f"No active loan with id {record_id}.")
        self.record_id = record_id


class BookUnavailable(LibraryError):
    def __init__(self, book_id: int) -> None:
        super().__init__(f"All copies of book {book_id} are on loan.")
        self.book_id = book_id


class PersistenceFailure(LibraryError):
    """The underlying store failed (connection, lock timeout, constraint)."""
