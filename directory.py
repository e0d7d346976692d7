import logging
import sqlite3
from typing import List, Optional

from errors import ReaderNotFound
from ledger import LoanLedger
from reader import Reader
from utils.validators import ContactValidator, TextValidator

logger = logging.getLogger(__name__)

_READER_COLUMNS = "id, name, phone, email, card_number, created_at"


class Directory:
    """Registered readers, bound to a single connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def exists(self, reader_id: int) -> bool:
        return self.conn.execute("SELECT 1 FROM readers WHERE id = ?", (reader_id,)).fetchone() is not None

    def get_reader(self, reader_id: int) -> Reader:
        row = self.conn.execute(f"SELECT {_READER_COLUMNS} FROM readers WHERE id = ?", (reader_id,)).fetchone()
        if row is None:
            raise ReaderNotFound(reader_id)
        return Reader.from_dict(dict(row))

    def list_readers(self, search: Optional[str] = None) -> List[Reader]:
        query = f"SELECT {_READER_COLUMNS} FROM readers WHERE 1=1"
        params: list = []
        if search:
            query += " AND (name LIKE ? OR card_number LIKE ? OR phone LIKE ?)"
            params.extend([f"%{search}%"] * 3)
        query += " ORDER BY id DESC"
        return [Reader.from_dict(dict(row)) for row in self.conn.execute(query, params).fetchall()]

    def add_reader(self, reader: Reader) -> Reader:
        name = TextValidator.require("Name", reader.name)
        card = ContactValidator.normalize_card_number(reader.card_number)
        email = ContactValidator.validate_email(reader.email)
        try:
            cursor = self.conn.execute(
                "INSERT INTO readers (name, phone, email, card_number) VALUES (?, ?, ?, ?)",
                (name, reader.phone, email, card),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Reader with card number {card} already exists.") from e
        logger.info(f"Reader registered: id={cursor.lastrowid}, card={card}")
        return self.get_reader(cursor.lastrowid)

    def update_reader(self, reader_id: int, *, name: Optional[str] = None, phone: Optional[str] = None,
                      email: Optional[str] = None, card_number: Optional[str] = None) -> Reader:
        """Update the given fields; None leaves a field unchanged."""
        self.get_reader(reader_id)
        updates = {}
        if name is not None:
            updates["name"] = TextValidator.require("Name", name)
        if phone is not None:
            updates["phone"] = phone.strip() or None
        if email is not None:
            updates["email"] = ContactValidator.validate_email(email)
        if card_number is not None:
            updates["card_number"] = ContactValidator.normalize_card_number(card_number)
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            try:
                self.conn.execute(f"UPDATE readers SET {assignments} WHERE id = ?", (*updates.values(), reader_id))
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Reader with card number {updates.get('card_number')} already exists.") from e
        return self.get_reader(reader_id)

    def delete_reader(self, reader_id: int) -> None:
        self.get_reader(reader_id)
        active = LoanLedger(self.conn).count_active(reader_id=reader_id)
        if active:
            raise ValueError(f"Reader {reader_id} still has {active} books on loan.")
        try:
            self.conn.execute("DELETE FROM readers WHERE id = ?", (reader_id,))
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Reader {reader_id} has loan history and cannot be removed.") from e
        logger.info(f"Reader removed: id={reader_id}")
