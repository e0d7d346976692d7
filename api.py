import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book import Book
from config import configure_logging, settings
from database import MAX_ROW_ID, LibraryStore
from errors import (
    BookNotFound, BookUnavailable, LibraryError, LoanNotFound, PersistenceFailure, ReaderNotFound,
)
from loan_record import LoanStatus
from loans import LoanService
from reader import Reader

logger = logging.getLogger(__name__)

# Ids in request paths; larger values cannot be stored in SQLite
RowId = Annotated[int, Path(ge=1, le=MAX_ROW_ID)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.store = LibraryStore().initialize()
    logger.info(f"{settings.app_name} {settings.app_version} using database {app.state.store.db_file}")
    yield
    app.state.store = None


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Dependencies ---
def get_store(request: Request) -> LibraryStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Database is not initialized.")
    return store


def get_loan_service(library_store: LibraryStore = Depends(get_store)) -> LoanService:
    return LoanService(library_store)


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency to validate the API key for catalog and directory edits."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Error handling ---
_NOT_FOUND = (BookNotFound, ReaderNotFound, LoanNotFound)

@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    if isinstance(exc, _NOT_FOUND):
        status_code = 404
    elif isinstance(exc, BookUnavailable):
        status_code = 400
    elif isinstance(exc, PersistenceFailure):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable, retry later."})
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: Optional[str] = None
    category: Optional[str] = None
    publisher: Optional[str] = None
    publish_date: Optional[str] = None
    total_quantity: int
    available_quantity: int
    description: Optional[str] = None
    created_at: Optional[str] = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: Optional[str] = None
    category: Optional[str] = None
    publisher: Optional[str] = None
    publish_date: Optional[str] = None
    total_quantity: int = Field(default=1, ge=0)
    description: Optional[str] = None


class BookUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    publisher: Optional[str] = None
    publish_date: Optional[str] = None
    total_quantity: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class AvailabilityModel(BaseModel):
    book_id: int
    total: int
    available: int


class ReaderModel(BaseModel):
    id: int
    name: str
    card_number: str
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[str] = None


class ReaderCreateModel(BaseModel):
    name: str
    card_number: str
    phone: Optional[str] = None
    email: Optional[str] = None


class ReaderUpdateModel(BaseModel):
    name: Optional[str] = None
    card_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class LoanCreateModel(BaseModel):
    book_id: int = Field(ge=1, le=MAX_ROW_ID)
    reader_id: int = Field(ge=1, le=MAX_ROW_ID)
    due_days: int = Field(default=settings.default_due_days, gt=0)


class LoanReceiptModel(BaseModel):
    id: int
    book_id: int
    reader_id: int
    borrow_date: str
    due_date: str


class LoanModel(BaseModel):
    id: int
    book_id: int
    reader_id: int
    borrow_date: str
    due_date: str
    return_date: Optional[str] = None
    status: LoanStatus
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    reader_name: Optional[str] = None
    reader_card: Optional[str] = None
    overdue: bool = False


# --- Health ---
@app.get("/health")
def health_check(library_store: LibraryStore = Depends(get_store)):
    """Health check endpoint."""
    with library_store.session() as s:
        active_loans = s.ledger.count_active()
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "active_loans": active_loans,
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    search: Optional[str] = Query(None, description="Match title, author or ISBN"),
    category: Optional[str] = Query(None, description="Exact category"),
    library_store: LibraryStore = Depends(get_store),
):
    with library_store.session() as s:
        books = s.catalog.list_books(search=search, category=category)
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: RowId, library_store: LibraryStore = Depends(get_store)):
    with library_store.session() as s:
        return BookModel(**s.catalog.get_book(book_id).to_dict())


@app.get("/books/{book_id}/availability", response_model=AvailabilityModel)
def get_book_availability(book_id: RowId, library_store: LibraryStore = Depends(get_store)):
    with library_store.session() as s:
        availability = s.catalog.get_availability(book_id)
    return AvailabilityModel(book_id=book_id, total=availability.total, available=availability.available)


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        book = s.catalog.add_book(Book(**payload.model_dump()))
    return BookModel(**book.to_dict())


@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: RowId, update: BookUpdateModel, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        book = s.catalog.update_book(book_id, **update.model_dump(exclude_none=True))
    return BookModel(**book.to_dict())


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: RowId, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        s.catalog.delete_book(book_id)
    return {"message": f"Book {book_id} deleted."}


# --- Readers ---
@app.get("/readers", response_model=List[ReaderModel])
def get_readers(
    search: Optional[str] = Query(None, description="Match name, card number or phone"),
    library_store: LibraryStore = Depends(get_store),
):
    with library_store.session() as s:
        readers = s.directory.list_readers(search=search)
    return [ReaderModel(**r.to_dict()) for r in readers]


@app.get("/readers/{reader_id}", response_model=ReaderModel)
def get_reader(reader_id: RowId, library_store: LibraryStore = Depends(get_store)):
    with library_store.session() as s:
        return ReaderModel(**s.directory.get_reader(reader_id).to_dict())


@app.post("/readers", response_model=ReaderModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_reader(payload: ReaderCreateModel, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        reader = s.directory.add_reader(Reader(**payload.model_dump()))
    return ReaderModel(**reader.to_dict())


@app.put("/readers/{reader_id}", response_model=ReaderModel, dependencies=[Depends(get_api_key)])
def update_reader(reader_id: RowId, update: ReaderUpdateModel, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        reader = s.directory.update_reader(reader_id, **update.model_dump(exclude_none=True))
    return ReaderModel(**reader.to_dict())


@app.delete("/readers/{reader_id}", dependencies=[Depends(get_api_key)])
def delete_reader(reader_id: RowId, library_store: LibraryStore = Depends(get_store)):
    with library_store.session(write=True) as s:
        s.directory.delete_reader(reader_id)
    return {"message": f"Reader {reader_id} deleted."}


# --- Loans ---
@app.get("/loans", response_model=List[LoanModel])
def get_loans(
    status: Optional[LoanStatus] = Query(None, description="borrowed or returned"),
    reader_id: Optional[int] = Query(None, ge=1, le=MAX_ROW_ID),
    book_id: Optional[int] = Query(None, ge=1, le=MAX_ROW_ID),
    loans: LoanService = Depends(get_loan_service),
):
    records = loans.list_loans(status=status, reader_id=reader_id, book_id=book_id)
    return [LoanModel(**r.to_dict()) for r in records]


@app.get("/loans/{record_id}", response_model=LoanModel)
def get_loan(record_id: RowId, loans: LoanService = Depends(get_loan_service)):
    return LoanModel(**loans.get_loan(record_id).to_dict())


@app.post("/loans", response_model=LoanReceiptModel, status_code=201)
def borrow_book(payload: LoanCreateModel, loans: LoanService = Depends(get_loan_service)):
    """Lend a copy. 404 if the book or reader is unknown, 400 if every copy is out."""
    receipt = loans.borrow(payload.book_id, payload.reader_id, due_days=payload.due_days)
    return LoanReceiptModel(**receipt._asdict())


@app.put("/loans/{record_id}/return", response_model=LoanModel)
def return_book(record_id: RowId, loans: LoanService = Depends(get_loan_service)):
    """Return a loan. 404 if there is no active loan with this id."""
    return LoanModel(**loans.return_loan(record_id).to_dict())
