import logging
import sqlite3
from typing import List, NamedTuple, Optional

from book import Book
from errors import BookNotFound, BookUnavailable
from utils.validators import TextValidator

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = (
    "id, title, author, isbn, category, publisher, publish_date, "
    "total_quantity, available_quantity, description, created_at"
)
_EDITABLE_FIELDS = ("title", "author", "isbn", "category", "publisher", "publish_date", "description")


class Availability(NamedTuple):
    total: int
    available: int


class Catalog:
    """Book inventory bound to a single connection.

    Instances are handed out by ``LibraryStore.session()`` so that every call
    made through one instance belongs to the same transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------- Copy accounting ------------------------- #
    def get_availability(self, book_id: int) -> Availability:
        row = self.conn.execute(
            "SELECT total_quantity, available_quantity FROM books WHERE id = ?", (book_id,)
        ).fetchone()
        if row is None:
            raise BookNotFound(book_id)
        return Availability(total=row["total_quantity"], available=row["available_quantity"])

    def try_reserve_copy(self, book_id: int) -> None:
        """Take one copy off the shelf, or fail without touching anything.

        The availability check and the decrement are one statement; the
        affected-row count decides who got the copy.
        """
        cursor = self.conn.execute(
            "UPDATE books SET available_quantity = available_quantity - 1 "
            "WHERE id = ? AND available_quantity > 0",
            (book_id,),
        )
        if cursor.rowcount == 1:
            return
        if not self.exists(book_id):
            raise BookNotFound(book_id)
        raise BookUnavailable(book_id)

    def release_copy(self, book_id: int) -> None:
        """Put one copy back, never exceeding the total."""
        cursor = self.conn.execute(
            "UPDATE books SET available_quantity = MIN(available_quantity + 1, total_quantity) WHERE id = ?",
            (book_id,),
        )
        if cursor.rowcount == 0:
            raise BookNotFound(book_id)

    # ------------------------- Core operations ------------------------- #
    def exists(self, book_id: int) -> bool:
        return self.conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is not None

    def get_book(self, book_id: int) -> Book:
        row = self.conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            raise BookNotFound(book_id)
        return Book.from_dict(dict(row))

    def list_books(self, search: Optional[str] = None, category: Optional[str] = None) -> List[Book]:
        """List books, newest first, optionally filtered by text and category."""
        query = f"SELECT {_BOOK_COLUMNS} FROM books WHERE 1=1"
        params: list = []
        if search:
            query += " AND (title LIKE ? OR author LIKE ? OR isbn LIKE ?)"
            params.extend([f"%{search}%"] * 3)
        if category:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY id DESC"
        return [Book.from_dict(dict(row)) for row in self.conn.execute(query, params).fetchall()]

    def add_book(self, book: Book) -> Book:
        """Insert a book with every copy on the shelf."""
        title = TextValidator.require("Title", book.title)
        author = TextValidator.require("Author", book.author)
        if book.total_quantity < 0:
            raise ValueError("Total quantity cannot be negative.")
        try:
            cursor = self.conn.execute(
                "INSERT INTO books (title, author, isbn, category, publisher, publish_date, "
                "total_quantity, available_quantity, description) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (title, author, book.isbn, book.category, book.publisher, book.publish_date,
                 book.total_quantity, book.total_quantity, TextValidator.sanitize_text(book.description)),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Book with ISBN {book.isbn} already exists.") from e
        logger.info(f"Book added: id={cursor.lastrowid}, title={title!r}, copies={book.total_quantity}")
        return self.get_book(cursor.lastrowid)

    def update_book(self, book_id: int, *, total_quantity: Optional[int] = None, **fields) -> Book:
        """Update metadata and/or the number of copies owned.

        A new total shifts the available count by the same delta, so copies
        currently on loan stay accounted for.
        """
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown book fields: {', '.join(sorted(unknown))}")
        book = self.get_book(book_id)

        # None means "leave unchanged"; an empty ISBN clears it
        updates = {k: v for k, v in fields.items() if v is not None}
        for name in ("title", "author"):
            if name in updates:
                updates[name] = TextValidator.require(name.capitalize(), updates[name])
        if "description" in updates:
            updates["description"] = TextValidator.sanitize_text(updates["description"])
        if "isbn" in updates:
            updates["isbn"] = updates["isbn"].strip() or None

        assignments = [f"{name} = ?" for name in updates]
        params = list(updates.values())
        if total_quantity is not None and total_quantity != book.total_quantity:
            if total_quantity < book.on_loan:
                raise ValueError(
                    f"Cannot set total quantity to {total_quantity}: {book.on_loan} copies are on loan."
                )
            delta = total_quantity - book.total_quantity
            assignments.append("total_quantity = ?")
            assignments.append("available_quantity = available_quantity + ?")
            params.extend([total_quantity, delta])

        if assignments:
            try:
                self.conn.execute(f"UPDATE books SET {', '.join(assignments)} WHERE id = ?", (*params, book_id))
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Book with ISBN {fields.get('isbn')} already exists.") from e
        return self.get_book(book_id)

    def delete_book(self, book_id: int) -> None:
        book = self.get_book(book_id)
        if book.on_loan:
            raise ValueError(f"Book {book_id} has {book.on_loan} copies on loan and cannot be removed.")
        try:
            self.conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        except sqlite3.IntegrityError as e:
            # loan records are never deleted, so their books stay too
            raise ValueError(f"Book {book_id} has loan history and cannot be removed.") from e
        logger.info(f"Book removed: id={book_id}")
