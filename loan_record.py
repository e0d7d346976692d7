from __future__ import annotations

from datetime import datetime
from enum import Enum


class LoanStatus(str, Enum):
    """Persisted as text in borrow_records.status."""
    BORROWED = "borrowed"
    RETURNED = "returned"


class LoanRecord:
    """One lending of one copy of a book to one reader.

    Created in status ``borrowed`` and moved to ``returned`` exactly once.
    Listing queries may attach the joined book/reader details.
    """

    def __init__(self, id: int, book_id: int, reader_id: int, borrow_date: str, due_date: str,
                 return_date: str | None = None, status: LoanStatus | str = LoanStatus.BORROWED,
                 book_title: str | None = None, book_author: str | None = None,
                 reader_name: str | None = None, reader_card: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.reader_id = reader_id
        self.borrow_date = borrow_date
        self.due_date = due_date
        self.return_date = return_date
        self.status = LoanStatus(status)
        self.book_title = book_title
        self.book_author = book_author
        self.reader_name = reader_name
        self.reader_card = reader_card

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"Loan {self.id}: book {self.book_id} -> reader {self.reader_id} ({self.status.value})"

    @property
    def is_active(self) -> bool:
        return self.status is LoanStatus.BORROWED

    def is_overdue(self, now: datetime | None = None) -> bool:
        if not self.is_active:
            return False
        now = now or datetime.now()
        return datetime.fromisoformat(self.due_date) < now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "reader_id": self.reader_id,
            "borrow_date": self.borrow_date,
            "due_date": self.due_date,
            "return_date": self.return_date,
            "status": self.status.value,
            "book_title": self.book_title,
            "book_author": self.book_author,
            "reader_name": self.reader_name,
            "reader_card": self.reader_card,
            "overdue": self.is_overdue(),
        }

    @staticmethod
    def from_dict(data: dict) -> "LoanRecord":
        return LoanRecord(
            id=data["id"],
            book_id=data["book_id"],
            reader_id=data["reader_id"],
            borrow_date=data["borrow_date"],
            due_date=data["due_date"],
            return_date=data.get("return_date"),
            status=data.get("status", LoanStatus.BORROWED.value),
            book_title=data.get("book_title"),
            book_author=data.get("book_author"),
            reader_name=data.get("reader_name"),
            reader_card=data.get("reader_card"),
        )
