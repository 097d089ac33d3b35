import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import settings
from elibrary.commands import (
    BorrowBookCommand,
    CreateBookCommand,
    GetBookQuery,
    ListBooksQuery,
    ListLedgerQuery,
    ReturnBookCommand,
    SearchBooksQuery,
)
from elibrary.errors import ErrorCodes
from elibrary.library import Library
from elibrary.pipeline import Pipeline, build_pipeline
from elibrary.result import LibraryResult
from elibrary.retry import ConflictRetryPolicy

logger = logging.getLogger(__name__)

# error_code -> (status code, short error title)
ERROR_STATUS = {
    ErrorCodes.NOT_FOUND: (404, "Resource not found"),
    ErrorCodes.VALIDATION_ERROR: (400, "Validation error"),
    ErrorCodes.OUT_OF_STOCK: (400, "Out of stock"),
    ErrorCodes.DUPLICATE_ISBN: (409, "Duplicate resource"),
    ErrorCodes.CONCURRENCY_CONFLICT: (409, "Concurrency conflict"),
    ErrorCodes.CONFLICT_EXHAUSTED: (409, "Concurrency conflict"),
    ErrorCodes.CANCELLED: (409, "Request cancelled"),
}


# --- Models ---
class BookModel(BaseModel):
    id: str
    name: str
    author: str
    isbn: str
    publication_year: int
    available_quantity: int
    version: int
    created_at: Optional[str] = None


class BookCreateModel(BaseModel):
    name: str = Field(description="Title of the book")
    author: str
    isbn: str
    publication_year: int
    quantity: int = Field(default=0, description="Copies available for lending")


class CustomerModel(BaseModel):
    customer_name: str = Field(description="Who is borrowing or returning the book")


class LedgerRecordModel(BaseModel):
    id: str
    book_id: str
    customer_name: str
    action: str
    timestamp: str


# --- Helper Functions ---
def _unwrap(result: LibraryResult):
    """Return the result value or raise an HTTP error matching its error code."""
    if result.is_success:
        return result.value
    status_code, title = ERROR_STATUS.get(result.error_code, (500, "Internal server error"))
    raise HTTPException(
        status_code=status_code,
        detail={"error": title, "message": result.error, "error_code": result.error_code},
    )


def create_app(db_file: Optional[str] = None, seed: Optional[bool] = None) -> FastAPI:
    """Build the API around its own Library and pipeline instance."""
    db_file = db_file or settings.database_file
    seed = settings.seed_data if seed is None else seed

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
        library = Library(db_file=db_file, retry_policy=ConflictRetryPolicy.from_settings(settings), seed=seed)
        app.state.library = library
        app.state.pipeline = build_pipeline(library, settings)
        logger.info(f"{settings.app_name} started with database {db_file}")
        yield

    app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        # Error bodies are flat: {"error", "message", "error_code"}
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content=exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    def pipeline(request: Request) -> Pipeline:
        return request.app.state.pipeline

    @app.get("/health")
    def health(request: Request):
        """Lightweight health check with a quick database round trip."""
        db_ok = True
        try:
            total_books = len(request.app.state.library.list_books())
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            db_ok = False
            total_books = 0
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_books": total_books,
            "db": db_ok,
        }

    @app.get("/books", response_model=List[BookModel])
    def get_books(request: Request):
        books = _unwrap(pipeline(request).send(ListBooksQuery()))
        return [b.to_dict() for b in books]

    @app.get("/books/search", response_model=List[BookModel])
    def search_books(
        request: Request,
        name: Optional[str] = Query(None),
        author: Optional[str] = Query(None),
        isbn: Optional[str] = Query(None),
    ):
        books = _unwrap(pipeline(request).send(SearchBooksQuery(name=name, author=author, isbn=isbn)))
        return [b.to_dict() for b in books]

    @app.get("/books/{book_id}", response_model=BookModel)
    def get_book(request: Request, book_id: str):
        return _unwrap(pipeline(request).send(GetBookQuery(book_id=book_id))).to_dict()

    @app.post("/books", response_model=BookModel, status_code=201)
    def add_book(request: Request, payload: BookCreateModel):
        command = CreateBookCommand(
            name=payload.name,
            author=payload.author,
            isbn=payload.isbn,
            publication_year=payload.publication_year,
            quantity=payload.quantity,
        )
        return _unwrap(pipeline(request).send(command)).to_dict()

    @app.post("/books/{book_id}/borrow", response_model=BookModel)
    def borrow_book(request: Request, book_id: str, payload: CustomerModel):
        command = BorrowBookCommand(book_id=book_id, customer_name=payload.customer_name)
        return _unwrap(pipeline(request).send(command)).to_dict()

    @app.post("/books/{book_id}/return", response_model=BookModel)
    def return_book(request: Request, book_id: str, payload: CustomerModel):
        command = ReturnBookCommand(book_id=book_id, customer_name=payload.customer_name)
        return _unwrap(pipeline(request).send(command)).to_dict()

    @app.get("/records", response_model=List[LedgerRecordModel])
    def get_records(request: Request):
        records = _unwrap(pipeline(request).send(ListLedgerQuery()))
        return [r.to_dict() for r in records]

    return app


app = create_app()
