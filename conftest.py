from datetime import datetime

import pytest

from book import Book
from database import LibraryStore
from reader import Reader


@pytest.fixture
def store(tmp_path, request):
    # Each test gets its own database file
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    return LibraryStore(db_file, timeout=5).initialize(seed=False)


@pytest.fixture
def add_book(store):
    def _add_book(title="Dune", author="Frank Herbert", copies=1, **fields):
        with store.session(write=True) as s:
            return s.catalog.add_book(Book(title=title, author=author, total_quantity=copies, **fields))
    return _add_book


@pytest.fixture
def add_reader(store):
    counter = {"n": 0}

    def _add_reader(name="Ada Lovelace", card_number=None, **fields):
        counter["n"] += 1
        card = card_number or f"R{counter['n']:03d}"
        with store.session(write=True) as s:
            return s.directory.add_reader(Reader(name=name, card_number=card, **fields))
    return _add_reader


@pytest.fixture
def fixed_clock():
    now = datetime(2024, 3, 1, 10, 30, 0)
    return lambda: now


@pytest.fixture
def counts(store):
    """Return (total, available, active loans) for a book."""
    def _counts(book_id):
        with store.session() as s:
            total, available = s.catalog.get_availability(book_id)
            return total, available, s.ledger.count_active(book_id=book_id)
    return _counts
