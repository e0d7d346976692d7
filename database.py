import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from catalog import Catalog
from config import settings
from directory import Directory
from errors import PersistenceFailure
from ledger import LoanLedger

logger = logging.getLogger(__name__)

# Default database file; LIBRARY_DB_FILE overrides it (see config.py).
DATABASE_FILE = settings.database_file

# Largest value an SQLite INTEGER column can hold
MAX_ROW_ID = 2**63 - 1

SAMPLE_BOOKS = [
    ("The Three-Body Problem", "Liu Cixin", "9787536692930", "Science Fiction", "Chongqing Publishing House",
     "2008-01", 5, "Hugo Award winner and a landmark of Chinese science fiction"),
    ("To Live", "Yu Hua", "9787506365437", "Literary Fiction", "Writers Publishing House", "2012-08", 3,
     "A classic of its era"),
    ("One Hundred Years of Solitude", "Gabriel Garcia Marquez", "9787544253994", "Literary Fiction",
     "Nanhai Publishing", "2011-06", 4, "The defining work of magical realism"),
    ("Python Crash Course", "Eric Matthes", "9787115428028", "Computing", "Posts & Telecom Press", "2016-07", 6,
     "The most popular introduction to Python"),
    ("Computer Systems: A Programmer's Perspective", "Randal E. Bryant", "9787111544937", "Computing",
     "China Machine Press", "2016-11", 4, "A classic computer science textbook"),
]

SAMPLE_READERS = [
    ("Zhang San", "13800138000", "zhangsan@example.com", "R001"),
    ("Li Si", "13800138001", "lisi@example.com", "R002"),
    ("Wang Wu", "13800138002", "wangwu@example.com", "R003"),
]


@dataclass
class Session:
    """Catalog, directory and ledger sharing one open transaction."""
    conn: sqlite3.Connection
    catalog: Catalog
    directory: Directory
    ledger: LoanLedger

    @classmethod
    def bind(cls, conn: sqlite3.Connection) -> "Session":
        return cls(conn=conn, catalog=Catalog(conn), directory=Directory(conn), ledger=LoanLedger(conn))


class LibraryStore:
    """Owns one SQLite database file and hands out transactional sessions.

    Every session gets its own connection, so a store can be shared between
    request threads. Write sessions take the database write lock up front
    (``BEGIN IMMEDIATE``); concurrent writers wait up to ``timeout`` seconds.
    """

    def __init__(self, db_file: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.db_file = db_file or DATABASE_FILE
        self.timeout = settings.database_timeout if timeout is None else timeout

    def connect(self) -> sqlite3.Connection:
        # Transactions are managed explicitly by session()
        conn = sqlite3.connect(self.db_file, timeout=self.timeout, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def session(self, write: bool = False) -> Iterator[Session]:
        """Open a transaction that commits on success and rolls back on any error.

        ``sqlite3`` errors leave the session as ``PersistenceFailure``; domain
        errors propagate unchanged after the rollback.
        """
        try:
            conn = self.connect()
        except sqlite3.Error as e:
            logger.error(f"Could not open database {self.db_file}: {e}")
            raise PersistenceFailure(f"Could not open database: {e}") from e
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield Session.bind(conn)
            conn.commit()
        except sqlite3.Error as e:
            self._rollback(conn)
            logger.error(f"Database error, transaction rolled back: {e}")
            raise PersistenceFailure(str(e)) from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.rollback()
        except sqlite3.Error as e:
            logger.error(f"Rollback failed: {e}")
            raise PersistenceFailure(f"Rollback failed: {e}") from e

    # ------------------------- Schema ------------------------- #
    def create_tables(self) -> None:
        """Create the tables and indexes if they don't exist."""
        # journal mode is persisted in the database file
        conn = self.connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not enable WAL mode: {e}") from e
        finally:
            conn.close()
        with self.session(write=True) as s:
            s.conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    isbn TEXT UNIQUE,
                    category TEXT,
                    publisher TEXT,
                    publish_date TEXT,
                    total_quantity INTEGER NOT NULL DEFAULT 1,
                    available_quantity INTEGER NOT NULL DEFAULT 1,
                    description TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CHECK (available_quantity >= 0 AND available_quantity <= total_quantity)
                )
            """)
            s.conn.execute("""
                CREATE TABLE IF NOT EXISTS readers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    phone TEXT,
                    email TEXT,
                    card_number TEXT UNIQUE NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            s.conn.execute("""
                CREATE TABLE IF NOT EXISTS borrow_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    book_id INTEGER NOT NULL,
                    reader_id INTEGER NOT NULL,
                    borrow_date TEXT NOT NULL,
                    due_date TEXT NOT NULL,
                    return_date TEXT,
                    status TEXT NOT NULL DEFAULT 'borrowed' CHECK (status IN ('borrowed', 'returned')),
                    FOREIGN KEY (book_id) REFERENCES books(id),
                    FOREIGN KEY (reader_id) REFERENCES readers(id)
                )
            """)
            s.conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
            s.conn.execute("CREATE INDEX IF NOT EXISTS idx_books_category ON books(category)")
            s.conn.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_book_status ON borrow_records(book_id, status)")
            s.conn.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_reader_status ON borrow_records(reader_id, status)")

    def seed_sample_data(self) -> bool:
        """Insert the sample books and readers into an empty database.

        Returns True when data was inserted.
        """
        with self.session(write=True) as s:
            if s.conn.execute("SELECT COUNT(*) FROM books").fetchone()[0] > 0:
                return False
            s.conn.executemany(
                "INSERT INTO books (title, author, isbn, category, publisher, publish_date, "
                "total_quantity, available_quantity, description) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [(t, a, i, c, p, d, q, q, desc) for t, a, i, c, p, d, q, desc in SAMPLE_BOOKS],
            )
            s.conn.executemany(
                "INSERT OR IGNORE INTO readers (name, phone, email, card_number) VALUES (?, ?, ?, ?)",
                SAMPLE_READERS,
            )
        logger.info(f"Seeded {len(SAMPLE_BOOKS)} books and {len(SAMPLE_READERS)} readers into {self.db_file}")
        return True

    def initialize(self, seed: Optional[bool] = None) -> "LibraryStore":
        """Create the schema and, if enabled, seed sample data."""
        self.create_tables()
        if settings.seed_sample_data if seed is None else seed:
            self.seed_sample_data()
        return self


def initialize_database(db_file: Optional[str] = None, seed: Optional[bool] = None) -> LibraryStore:
    """Initializes the database file and returns a store bound to it."""
    return LibraryStore(db_file).initialize(seed=seed)
