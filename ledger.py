import sqlite3
from typing import List, Optional

from loan_record import LoanRecord, LoanStatus

_RECORD_COLUMNS = "id, book_id, reader_id, borrow_date, due_date, return_date, status"


class LoanLedger:
    """Loan records. Rows are inserted and updated, never deleted."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def create_record(self, book_id: int, reader_id: int, borrow_date: str, due_date: str) -> int:
        cursor = self.conn.execute(
            "INSERT INTO borrow_records (book_id, reader_id, borrow_date, due_date, status) VALUES (?, ?, ?, ?, ?)",
            (book_id, reader_id, borrow_date, due_date, LoanStatus.BORROWED.value),
        )
        return cursor.lastrowid

    def find_active_by_id(self, record_id: int) -> Optional[LoanRecord]:
        row = self.conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM borrow_records WHERE id = ? AND status = ?",
            (record_id, LoanStatus.BORROWED.value),
        ).fetchone()
        return LoanRecord.from_dict(dict(row)) if row else None

    def mark_returned(self, record_id: int, return_date: str) -> None:
        # status is not re-checked here; the loan service looks the record up first
        self.conn.execute(
            "UPDATE borrow_records SET status = ?, return_date = ? WHERE id = ?",
            (LoanStatus.RETURNED.value, return_date, record_id),
        )

    def get_record(self, record_id: int) -> Optional[LoanRecord]:
        rows = self.list_records(record_id=record_id)
        return rows[0] if rows else None

    def list_records(self, status: Optional[LoanStatus | str] = None, reader_id: Optional[int] = None,
                     book_id: Optional[int] = None, record_id: Optional[int] = None) -> List[LoanRecord]:
        """List loans, newest first, with the book and reader details joined in."""
        query = """
            SELECT br.id, br.book_id, br.reader_id, br.borrow_date, br.due_date, br.return_date, br.status,
                   b.title AS book_title, b.author AS book_author,
                   r.name AS reader_name, r.card_number AS reader_card
            FROM borrow_records br
            LEFT JOIN books b ON br.book_id = b.id
            LEFT JOIN readers r ON br.reader_id = r.id
            WHERE 1=1
        """
        params: list = []
        if status:
            query += " AND br.status = ?"
            params.append(LoanStatus(status).value)
        if reader_id is not None:
            query += " AND br.reader_id = ?"
            params.append(reader_id)
        if book_id is not None:
            query += " AND br.book_id = ?"
            params.append(book_id)
        if record_id is not None:
            query += " AND br.id = ?"
            params.append(record_id)
        query += " ORDER BY br.id DESC"
        return [LoanRecord.from_dict(dict(row)) for row in self.conn.execute(query, params).fetchall()]

    def count_active(self, book_id: Optional[int] = None, reader_id: Optional[int] = None) -> int:
        query = "SELECT COUNT(*) FROM borrow_records WHERE status = ?"
        params: list = [LoanStatus.BORROWED.value]
        if book_id is not None:
            query += " AND book_id = ?"
            params.append(book_id)
        if reader_id is not None:
            query += " AND reader_id = ?"
            params.append(reader_id)
        return self.conn.execute(query, params).fetchone()[0]
