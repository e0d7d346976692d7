import logging
import subprocess
import sys
import webbrowser
from typing import Optional

import typer

import database
from book import Book
from config import configure_logging, settings
from database import MAX_ROW_ID, LibraryStore
from errors import LibraryError
from loan_record import LoanStatus
from loans import LoanService
from reader import Reader
from utils.ui_helpers import (
    BOOK_COLUMNS, LOAN_COLUMNS, READER_COLUMNS, print_message, print_records, set_output_mode,
)

logger = logging.getLogger(__name__)

APP_NAME = "Library CLI"

app = typer.Typer(help="Library lending CLI")


def _store() -> LibraryStore:
    """Store for the configured database file, schema created on first use."""
    return LibraryStore(database.DATABASE_FILE).initialize(seed=False)


def _fail(error: Exception) -> None:
    print_message(f"Error: {error}", style="bold red")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global CLI options (output mode, logging)."""
    configure_logging("DEBUG" if verbose else "WARNING")
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db(seed: bool = typer.Option(False, "--seed", help="Insert sample books and readers")):
    """Create the database tables."""
    store = LibraryStore(database.DATABASE_FILE).initialize(seed=seed)
    print_message(f"Database ready: {store.db_file}")


@app.command("seed")
def cli_seed():
    """Insert sample books and readers into an empty database."""
    if _store().seed_sample_data():
        print_message("Sample data inserted.")
    else:
        print_message("Database already has books; nothing inserted.", style="yellow")


@app.command("books")
def cli_books(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Match title, author or ISBN"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Exact category"),
):
    """List books with their copy counts."""
    try:
        with _store().session() as s:
            books = s.catalog.list_books(search=search, category=category)
    except LibraryError as e:
        _fail(e)
    print_records(books, BOOK_COLUMNS, "📚 Books", "No books in library.")


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    category: Optional[str] = typer.Option(None, "--category"),
    publisher: Optional[str] = typer.Option(None, "--publisher"),
    publish_date: Optional[str] = typer.Option(None, "--publish-date"),
    copies: int = typer.Option(1, "--copies", min=0, help="Number of copies owned"),
):
    """Add a book to the catalog."""
    try:
        with _store().session(write=True) as s:
            book = s.catalog.add_book(Book(title=title, author=author, isbn=isbn, category=category,
                                           publisher=publisher, publish_date=publish_date,
                                           total_quantity=copies))
    except (LibraryError, ValueError) as e:
        _fail(e)
    print_message(f"Added book {book.id}: {book.title} by {book.author} ({book.total_quantity} copies)")


@app.command("readers")
def cli_readers(search: Optional[str] = typer.Option(None, "--search", "-s", help="Match name, card or phone")):
    """List registered readers."""
    try:
        with _store().session() as s:
            readers = s.directory.list_readers(search=search)
    except LibraryError as e:
        _fail(e)
    print_records(readers, READER_COLUMNS, "🪪 Readers", "No readers registered.")


@app.command("add-reader")
def cli_add_reader(
    name: str,
    card_number: str,
    phone: Optional[str] = typer.Option(None, "--phone"),
    email: Optional[str] = typer.Option(None, "--email"),
):
    """Register a reader."""
    try:
        with _store().session(write=True) as s:
            reader = s.directory.add_reader(Reader(name=name, card_number=card_number, phone=phone, email=email))
    except (LibraryError, ValueError) as e:
        _fail(e)
    print_message(f"Registered reader {reader.id}: {reader.name} (card {reader.card_number})")


@app.command("borrow")
def cli_borrow(
    book_id: int = typer.Argument(..., min=1, max=MAX_ROW_ID),
    reader_id: int = typer.Argument(..., min=1, max=MAX_ROW_ID),
    due_days: int = typer.Option(settings.default_due_days, "--due-days", "-d", help="Loan period in days"),
):
    """Lend one copy of a book to a reader."""
    try:
        receipt = LoanService(_store()).borrow(book_id, reader_id, due_days=due_days)
    except (LibraryError, ValueError) as e:
        _fail(e)
    print_message(f"Loan {receipt.id} created, due {receipt.due_date[:10]}")


@app.command("return")
def cli_return(loan_id: int = typer.Argument(..., min=1, max=MAX_ROW_ID)):
    """Return a borrowed copy."""
    try:
        record = LoanService(_store()).return_loan(loan_id)
    except LibraryError as e:
        _fail(e)
    print_message(f"Loan {record.id} returned.")


@app.command("loans")
def cli_loans(
    status: Optional[LoanStatus] = typer.Option(None, "--status", help="borrowed or returned"),
    reader_id: Optional[int] = typer.Option(None, "--reader"),
    book_id: Optional[int] = typer.Option(None, "--book"),
):
    """List loan records, newest first."""
    try:
        records = LoanService(_store()).list_loans(status=status, reader_id=reader_id, book_id=book_id)
    except LibraryError as e:
        _fail(e)
    print_records(records, LOAN_COLUMNS, "📖 Loans", "No loans found.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    open_browser: bool = typer.Option(False, "--open", help="Open the API docs in a browser"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            logger.warning("Could not open a web browser.")
    args = [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)]
    try:
        subprocess.run(args)
    except FileNotFoundError:
        print("Error: `uvicorn` could not be started. Make sure it is installed in this environment.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
