import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book_inventory.book import BookCandidate, BookFilter, is_valid_book_id
from book_inventory.config import Settings
from book_inventory.errors import (
    DuplicateField,
    InventoryError,
    NoCopiesAvailable,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from book_inventory.inventory import InventoryStore

logger = logging.getLogger(__name__)


# --- Models ---
class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    category: str
    publicationYear: int
    availableCopies: int
    createdAt: str
    updatedAt: str


class BookFieldsModel(BaseModel):
    """Request body for create and update.

    Fields are left untyped here; the core validator decides what is a valid
    title, year or copy count so HTTP and CLI callers get the same errors.
    """

    title: Any = None
    author: Any = None
    isbn: Any = None
    category: Any = None
    publicationYear: Any = Field(default=None, description="1000 up to the current year")
    availableCopies: Any = Field(default=None, description="Defaults to 1 on create")

    def to_candidate(self) -> BookCandidate:
        return BookCandidate.from_mapping(self.model_dump(exclude_none=True))


class StatsModel(BaseModel):
    total_books: int
    unique_authors: int
    total_available_copies: int
    out_of_stock: int
    by_category: Dict[str, int]


# --- Dependencies ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_store(request: Request) -> InventoryStore:
    return request.app.state.store


def require_api_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> None:
    """Guard for write routes; a no-op when no API key is configured."""
    expected = request.app.state.settings.api_key
    if expected and api_key != expected:
        raise HTTPException(status_code=403, detail="Could not validate credentials")


def valid_book_id(book_id: str) -> str:
    # An id that could never have been assigned does not reach the store
    if not is_valid_book_id(book_id):
        raise HTTPException(status_code=400, detail="Invalid book ID")
    return book_id


# --- Error mapping ---
def _error_response(status_code: int, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(400, {"error": "Validation failed", "details": {exc.field: str(exc)}})


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and query parameters get the same shape as core validation
    details = {str(err["loc"][-1]): err["msg"] for err in exc.errors() if err.get("loc")}
    return _error_response(400, {"error": "Validation failed", "details": details})


async def _duplicate_field(request: Request, exc: DuplicateField) -> JSONResponse:
    return _error_response(400, {"error": "Duplicate value", "field": exc.field})


async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return _error_response(404, {"error": "Book not found"})


async def _no_copies(request: Request, exc: NoCopiesAvailable) -> JSONResponse:
    return _error_response(400, {"error": "No copies available to borrow", "currentCopies": exc.current_copies})


async def _storage_unavailable(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error("Storage unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return _error_response(503, {"error": "Storage unavailable"}, headers={"Retry-After": "1"})


async def _inventory_error(request: Request, exc: InventoryError) -> JSONResponse:
    return _error_response(400, {"error": str(exc)})


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, {"error": exc.detail}, headers=getattr(exc, "headers", None))


def create_app(store: Optional[InventoryStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the HTTP shell around an inventory store.

    When no store is passed one is built from settings at startup and released
    at shutdown.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.store is None
        if owned:
            logging.basicConfig(level=settings.log_level)
            app.state.store = InventoryStore(settings=settings)
            logger.info("Inventory store opened at %s", app.state.store.database.db_file)
        try:
            yield
        finally:
            if owned:
                app.state.store.close()
                app.state.store = None

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.store = store
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(DuplicateField, _duplicate_field)
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(NoCopiesAvailable, _no_copies)
    app.add_exception_handler(StorageUnavailable, _storage_unavailable)
    app.add_exception_handler(InventoryError, _inventory_error)
    app.add_exception_handler(HTTPException, _http_error)

    # --- Health check ---
    @app.get("/health")
    def health(store: InventoryStore = Depends(get_store)):
        """Liveness check with a quick database round trip."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_books": store.count(),
        }

    # --- Books ---
    @app.post("/api/books", status_code=201, response_model=BookModel, dependencies=[Depends(require_api_key)])
    def create_book(payload: BookFieldsModel, store: InventoryStore = Depends(get_store)):
        """Add a new book to the catalog."""
        return store.create_book(payload.to_candidate()).to_dict()

    @app.get("/api/books", response_model=List[BookModel])
    def list_books(
        title: Optional[str] = Query(None, description="Case-insensitive title substring"),
        author: Optional[str] = Query(None, description="Case-insensitive author substring"),
        category: Optional[str] = Query(None, description="Exact category"),
        minYear: Optional[int] = Query(None, description="Earliest publication year, inclusive"),
        maxYear: Optional[int] = Query(None, description="Latest publication year, inclusive"),
        store: InventoryStore = Depends(get_store),
    ):
        """List books matching every supplied filter."""
        book_filter = BookFilter(
            title_contains=title,
            author_contains=author,
            category=category,
            min_year=minYear,
            max_year=maxYear,
        )
        return [b.to_dict() for b in store.list_books(book_filter)]

    @app.get("/api/books/stats", response_model=StatsModel)
    def get_stats(store: InventoryStore = Depends(get_store)):
        return store.get_statistics()

    @app.get("/api/books/{book_id}", response_model=BookModel)
    def get_book(book_id: str = Depends(valid_book_id), store: InventoryStore = Depends(get_store)):
        return store.get_book(book_id).to_dict()

    @app.put("/api/books/{book_id}", response_model=BookModel, dependencies=[Depends(require_api_key)])
    def update_book(
        payload: BookFieldsModel,
        book_id: str = Depends(valid_book_id),
        store: InventoryStore = Depends(get_store),
    ):
        """Replace some or all fields of a book; the result is revalidated."""
        return store.update_book(book_id, payload.to_candidate()).to_dict()

    @app.delete("/api/books/{book_id}", dependencies=[Depends(require_api_key)])
    def delete_book(book_id: str = Depends(valid_book_id), store: InventoryStore = Depends(get_store)):
        store.delete_book(book_id)
        return {"message": "Book deleted successfully"}

    @app.patch("/api/books/{book_id}/decrement", response_model=BookModel, dependencies=[Depends(require_api_key)])
    def decrement_book(book_id: str = Depends(valid_book_id), store: InventoryStore = Depends(get_store)):
        """Borrow one copy. Fails when none are left."""
        return store.decrement_availability(book_id).to_dict()

    return app


app = create_app()
