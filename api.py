import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

import constants
from config import configure_logging, settings
from errors import (
    BusinessRuleError,
    InvalidBookError,
    InvalidBorrowerError,
    ResourceNotFoundError,
    StoreError,
    ValidationError,
)
from library import Library
from schemas import (
    BookCreateModel,
    BookModel,
    BorrowerCreateModel,
    BorrowerModel,
    BorrowingInfoModel,
    MessageModel,
    PageModel,
    field_errors,
)

logger = logging.getLogger(__name__)

library: Optional[Library] = None


def get_library() -> Library:
    """Dependency returning the process-wide Library, opening it on first use."""
    global library
    if library is None:
        library = Library()
    return library


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    get_library()
    logger.info("%s %s started", settings.app_name, settings.app_version)
    yield
    if library:
        library.close()

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency to validate the API key."""
    if api_key == settings.api_key:
        return api_key
    else:
        raise HTTPException(
            status_code=403,
            detail="Could not validate credentials",
        )

# --- Error responses ---
def _message(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": str(exc)})

@app.exception_handler(ResourceNotFoundError)
async def handle_not_found(request: Request, exc: ResourceNotFoundError):
    return _message(404, exc)

@app.exception_handler(InvalidBookError)
@app.exception_handler(InvalidBorrowerError)
@app.exception_handler(BusinessRuleError)
async def handle_rule_violation(request: Request, exc: Exception):
    return _message(422, exc)

@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    logger.error("Validation failed for %s: %s", request.url.path, exc.field_errors)
    return JSONResponse(status_code=400, content=exc.field_errors)

@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = field_errors(exc)
    logger.error("Request validation failed for %s: %s", request.url.path, errors)
    return JSONResponse(status_code=400, content=errors)

@app.exception_handler(StoreError)
async def handle_store_error(request: Request, exc: StoreError):
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return _message(500, exc)

# --- Pagination parameters ---
def page_params(
    pageNo: int = Query(constants.DEFAULT_PAGE_NO, ge=0, le=constants.SQLITE_MAX_INTEGER,
                       description="Zero-based page number"),
    pageSize: int = Query(constants.DEFAULT_PAGE_SIZE, ge=1, le=settings.max_page_size, description="Items per page"),
    sortBy: str = Query(constants.DEFAULT_SORT_BY, description="Field to sort by"),
    sortDir: str = Query(constants.DEFAULT_SORT_DIRECTION, description="asc | desc"),
) -> dict:
    return {"page_no": pageNo, "page_size": pageSize, "sort_by": sortBy, "sort_dir": sortDir}

def borrowing_page_params(
    pageNo: int = Query(constants.DEFAULT_PAGE_NO, ge=0, le=constants.SQLITE_MAX_INTEGER),
    pageSize: int = Query(constants.DEFAULT_PAGE_SIZE, ge=1, le=settings.max_page_size),
    sortBy: str = Query(constants.DEFAULT_SORT_BY),
    sortDir: str = Query(constants.BORROWING_SORT_DIRECTION),
) -> dict:
    return {"page_no": pageNo, "page_size": pageSize, "sort_by": sortBy, "sort_dir": sortDir}

# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    """Lightweight health endpoint with a quick database round trip."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": lib.is_healthy(),
    }

# --- Books ---
@app.post("/api/v1/book/register", response_model=BookModel, status_code=201,
          dependencies=[Depends(get_api_key)], tags=["Library Book Management"])
def register_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
    """Register a new book to the library."""
    logger.info("Received request to register a new book: %s", payload.isbn)
    book = lib.catalog.register_book(payload.to_request())
    return BookModel.from_book(book)

@app.get("/api/v1/book/getAllBooks", response_model=PageModel[BookModel], tags=["Library Book Management"])
def get_all_books(params: dict = Depends(page_params), lib: Library = Depends(get_library)):
    """Fetch all books."""
    page = lib.catalog.list_books(**params)
    return PageModel[BookModel].from_page(page, BookModel.from_book)

@app.get("/api/v1/book/getAvailable", response_model=PageModel[BookModel], tags=["Library Book Management"])
def get_available_books(params: dict = Depends(page_params), lib: Library = Depends(get_library)):
    """Fetch all books available to borrow."""
    page = lib.catalog.list_available_books(**params)
    return PageModel[BookModel].from_page(page, BookModel.from_book)

@app.get("/api/v1/book/{bookId}", response_model=BookModel,
         responses={404: {"model": MessageModel}}, tags=["Library Book Management"])
def get_book(bookId: int = Path(..., le=constants.SQLITE_MAX_INTEGER), lib: Library = Depends(get_library)):
    """Fetch book details by ID."""
    return BookModel.from_book(lib.catalog.get_book_by_id(bookId))

# --- Borrowers ---
@app.post("/api/v1/borrower/register", response_model=BorrowerModel, status_code=201,
          dependencies=[Depends(get_api_key)], tags=["Borrower Management"])
def register_borrower(payload: BorrowerCreateModel, lib: Library = Depends(get_library)):
    """Register a new borrower."""
    logger.info("Received request to register a new borrower")
    borrower = lib.catalog.register_borrower(payload.to_request())
    return BorrowerModel.from_borrower(borrower)

@app.get("/api/v1/borrower", response_model=PageModel[BorrowerModel], tags=["Borrower Management"])
def get_all_borrowers(params: dict = Depends(page_params), lib: Library = Depends(get_library)):
    """Fetch all borrowers."""
    page = lib.catalog.list_borrowers(**params)
    return PageModel[BorrowerModel].from_page(page, BorrowerModel.from_borrower)

@app.get("/api/v1/borrower/{borrowerId}", response_model=BorrowerModel,
         responses={404: {"model": MessageModel}}, tags=["Borrower Management"])
def get_borrower(borrowerId: int = Path(..., le=constants.SQLITE_MAX_INTEGER), lib: Library = Depends(get_library)):
    """Fetch borrower details by ID."""
    return BorrowerModel.from_borrower(lib.catalog.get_borrower_by_id(borrowerId))

# --- Borrowing ---
@app.get("/api/v1/borrowing/getBorrowingInfo/{borrowerId}/{bookId}", response_model=BorrowingInfoModel,
         responses={404: {"model": MessageModel}}, tags=["Borrowing Management"])
def get_borrowing_info(borrowerId: int = Path(..., le=constants.SQLITE_MAX_INTEGER),
                       bookId: int = Path(..., le=constants.SQLITE_MAX_INTEGER),
                       lib: Library = Depends(get_library)):
    """Get borrowing info by borrower ID and book ID."""
    return BorrowingInfoModel.from_info(lib.lending.get_borrowing_info(borrowerId, bookId))

@app.get("/api/v1/borrowing/{borrowerId}", response_model=PageModel[BorrowingInfoModel],
         tags=["Borrowing Management"])
def get_borrowings_by_borrower(borrowerId: int = Path(..., le=constants.SQLITE_MAX_INTEGER),
                               params: dict = Depends(borrowing_page_params),
                               lib: Library = Depends(get_library)):
    """Get all books borrowed by a borrower."""
    page = lib.lending.list_borrowings_by_borrower(borrowerId, **params)
    return PageModel[BorrowingInfoModel].from_page(page, BorrowingInfoModel.from_info)

@app.post("/api/v1/borrowing/{bookId}/borrow", response_model=BorrowingInfoModel,
          dependencies=[Depends(get_api_key)], responses={404: {"model": MessageModel}, 422: {"model": MessageModel}},
          tags=["Borrowing Management"])
def borrow_book(bookId: int = Path(..., le=constants.SQLITE_MAX_INTEGER),
                borrowerId: int = Query(..., le=constants.SQLITE_MAX_INTEGER),
                lib: Library = Depends(get_library)):
    """Borrow a book."""
    logger.info("Received request to borrow book %s for borrower %s", bookId, borrowerId)
    return BorrowingInfoModel.from_info(lib.lending.borrow_book(bookId, borrowerId))

@app.put("/api/v1/borrowing/{borrowingId}/return", response_model=BorrowingInfoModel,
         dependencies=[Depends(get_api_key)], responses={404: {"model": MessageModel}, 422: {"model": MessageModel}},
         tags=["Borrowing Management"])
def return_book(borrowingId: int = Path(..., le=constants.SQLITE_MAX_INTEGER), lib: Library = Depends(get_library)):
    """Return a borrowed book."""
    logger.info("Received request to return book with borrowingId: %s", borrowingId)
    return BorrowingInfoModel.from_info(lib.lending.return_book(borrowingId))
