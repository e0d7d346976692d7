import pytest

from book import Book
from errors import BookNotFound, BookUnavailable
from loans import LoanService


def test_add_and_get_book(store, add_book):
    book = add_book(title="  Ulysses ", author="James Joyce", copies=2, isbn="9780199535675", category="Fiction")

    with store.session() as s:
        fetched = s.catalog.get_book(book.id)
    assert fetched.title == "Ulysses"
    assert fetched.total_quantity == 2
    assert fetched.available_quantity == 2
    assert fetched.created_at is not None


def test_add_duplicate_isbn(store, add_book):
    add_book(isbn="1234567890")
    with pytest.raises(ValueError, match="Book with ISBN 1234567890 already exists."):
        add_book(title="Other", isbn="1234567890")


def test_books_without_isbn_do_not_collide(add_book):
    add_book(title="First", isbn="")
    add_book(title="Second")


@pytest.mark.parametrize("title,author", [("", "Author"), ("Title", "   ")])
def test_add_book_requires_title_and_author(add_book, title, author):
    with pytest.raises(ValueError):
        add_book(title=title, author=author)


def test_list_books_search_and_category(store, add_book):
    add_book(title="Python Crash Course", author="Eric Matthes", category="Computing")
    add_book(title="To Live", author="Yu Hua", category="Fiction")
    add_book(title="Fluent Python", author="Luciano Ramalho", category="Computing")

    with store.session() as s:
        assert [b.title for b in s.catalog.list_books()] == ["Fluent Python", "To Live", "Python Crash Course"]
        assert len(s.catalog.list_books(search="python")) == 2
        assert [b.title for b in s.catalog.list_books(category="Fiction")] == ["To Live"]
        assert s.catalog.list_books(search="Yu", category="Computing") == []


def test_try_reserve_copy_is_conditional(store, add_book):
    book = add_book(copies=1)
    with store.session(write=True) as s:
        s.catalog.try_reserve_copy(book.id)
        with pytest.raises(BookUnavailable):
            s.catalog.try_reserve_copy(book.id)
        assert s.catalog.get_availability(book.id) == (1, 0)


def test_reserve_and_release_unknown_book(store):
    with store.session(write=True) as s:
        with pytest.raises(BookNotFound):
            s.catalog.try_reserve_copy(42)
        with pytest.raises(BookNotFound):
            s.catalog.release_copy(42)
        with pytest.raises(BookNotFound):
            s.catalog.get_availability(42)


def test_release_copy_never_exceeds_total(store, add_book):
    book = add_book(copies=2)
    with store.session(write=True) as s:
        s.catalog.release_copy(book.id)
        assert s.catalog.get_availability(book.id) == (2, 2)


def test_update_book_fields(store, add_book):
    book = add_book()
    with store.session(write=True) as s:
        updated = s.catalog.update_book(book.id, title="Dune Messiah", publisher="Ace")
    assert updated.title == "Dune Messiah"
    assert updated.publisher == "Ace"
    assert updated.author == "Frank Herbert"


def test_update_book_rejects_unknown_fields(store, add_book):
    book = add_book()
    with store.session(write=True) as s:
        with pytest.raises(ValueError, match="Unknown book fields"):
            s.catalog.update_book(book.id, available_quantity=10)


def test_changing_total_keeps_loans_accounted(store, add_book, add_reader, counts):
    book = add_book(copies=3)
    loans = LoanService(store)
    loans.borrow(book.id, add_reader().id)
    loans.borrow(book.id, add_reader().id)

    with store.session(write=True) as s:
        s.catalog.update_book(book.id, total_quantity=5)
    assert counts(book.id) == (5, 3, 2)

    with store.session(write=True) as s:
        s.catalog.update_book(book.id, total_quantity=2)
    assert counts(book.id) == (2, 0, 2)

    with store.session(write=True) as s:
        with pytest.raises(ValueError, match="2 copies are on loan"):
            s.catalog.update_book(book.id, total_quantity=1)
    assert counts(book.id) == (2, 0, 2)


def test_delete_book(store, add_book):
    book = add_book()
    with store.session(write=True) as s:
        s.catalog.delete_book(book.id)
    with store.session() as s:
        assert not s.catalog.exists(book.id)
        with pytest.raises(BookNotFound):
            s.catalog.delete_book(book.id)


def test_delete_book_with_loans_is_refused(store, add_book, add_reader):
    book = add_book(copies=1)
    loans = LoanService(store)
    receipt = loans.borrow(book.id, add_reader().id)

    with store.session(write=True) as s:
        with pytest.raises(ValueError, match="on loan"):
            s.catalog.delete_book(book.id)

    loans.return_loan(receipt.id)
    with store.session(write=True) as s:
        with pytest.raises(ValueError, match="loan history"):
            s.catalog.delete_book(book.id)


def test_book_from_dict_defaults_available_to_total():
    book = Book.from_dict({"title": "T", "author": "A", "total_quantity": 4})
    assert book.available_quantity == 4
    assert book.on_loan == 0
