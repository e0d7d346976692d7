import logging
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from database import LibraryStore
from errors import BookNotFound, BookUnavailable, LoanNotFound, ReaderNotFound
from loan_record import LoanRecord, LoanStatus

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30


class LoanReceipt(NamedTuple):
    id: int
    book_id: int
    reader_id: int
    borrow_date: str
    due_date: str


class LoanService:
    """Lends and takes back copies.

    Each operation runs in a single write session on the injected store: the
    copy counter and the loan record change together or not at all.
    """

    def __init__(self, store: LibraryStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self.store = store
        self.clock = clock

    def borrow(self, book_id: int, reader_id: int, due_days: int = DEFAULT_DUE_DAYS) -> LoanReceipt:
        """Lend one copy of ``book_id`` to ``reader_id`` for ``due_days`` days.

        Raises BookNotFound, ReaderNotFound, BookUnavailable or
        PersistenceFailure. ValueError if ``due_days`` is not a positive integer.
        """
        if isinstance(due_days, bool) or not isinstance(due_days, int) or due_days <= 0:
            raise ValueError(f"due_days must be a positive integer, got {due_days!r}")

        try:
            with self.store.session(write=True) as s:
                if not s.catalog.exists(book_id):
                    raise BookNotFound(book_id)
                if not s.directory.exists(reader_id):
                    raise ReaderNotFound(reader_id)

                s.catalog.try_reserve_copy(book_id)

                borrowed_at = self.clock()
                due_at = borrowed_at + timedelta(days=due_days)
                record_id = s.ledger.create_record(
                    book_id, reader_id, borrowed_at.isoformat(), due_at.isoformat()
                )
        except (BookNotFound, ReaderNotFound, BookUnavailable) as e:
            logger.warning(f"Borrow rejected: book={book_id}, reader={reader_id}: {e}")
            raise

        logger.info(f"Loan {record_id} created: book={book_id}, reader={reader_id}, due={due_at.date()}")
        return LoanReceipt(
            id=record_id,
            book_id=book_id,
            reader_id=reader_id,
            borrow_date=borrowed_at.isoformat(),
            due_date=due_at.isoformat(),
        )

    def return_loan(self, record_id: int) -> LoanRecord:
        """Close an active loan and put its copy back on the shelf.

        Raises LoanNotFound when no loan with this id is currently borrowed,
        whether it never existed or was already returned.
        """
        with self.store.session(write=True) as s:
            record = s.ledger.find_active_by_id(record_id)
            if record is None:
                logger.warning(f"Return rejected: no active loan {record_id}")
                raise LoanNotFound(record_id)

            returned_at = self.clock().isoformat()
            s.ledger.mark_returned(record_id, returned_at)
            s.catalog.release_copy(record.book_id)

        record.status = LoanStatus.RETURNED
        record.return_date = returned_at
        logger.info(f"Loan {record_id} returned: book={record.book_id}, reader={record.reader_id}")
        return record

    # ------------------------- Queries ------------------------- #
    def get_loan(self, record_id: int) -> LoanRecord:
        with self.store.session() as s:
            record = s.ledger.get_record(record_id)
        if record is None:
            raise LoanNotFound(record_id, f"Loan {record_id} not found.")
        return record

    def list_loans(self, status: Optional[str] = None, reader_id: Optional[int] = None,
                   book_id: Optional[int] = None) -> List[LoanRecord]:
        with self.store.session() as s:
            return s.ledger.list_records(status=status, reader_id=reader_id, book_id=book_id)
