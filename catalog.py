import logging
import sqlite3

import constants
from errors import InvalidBookError, InvalidBorrowerError, ResourceNotFoundError
from models import Book, BookRequest, Borrower, BorrowerRequest, Page
from store import BOOKS, BORROWERS, RecordStore, StoreSession

logger = logging.getLogger(__name__)


class CatalogManager:
    """Registers books and borrowers and serves lookups and listings."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # ------------------------- Books ------------------------- #
    def register_book(self, request: BookRequest) -> Book:
        """Register a copy of a book. Copies sharing an ISBN must agree on title and author."""
        logger.info("Registering a new book with ISBN: %s", request.isbn)
        with self.store.transaction() as session:
            self._validate_isbn(session, request)
            book = session.insert(BOOKS, {**request.to_dict(), "borrowed": False})
        logger.info("Library Book registered successfully with id %s (ISBN: %s)", book.id, book.isbn)
        return book

    def get_book_by_id(self, book_id: int) -> Book:
        logger.info("Fetching book details for ID: %s", book_id)
        with self.store.transaction(write=False) as session:
            book = session.get_by_id(BOOKS, book_id)
        if book is None:
            logger.error("Library Book not found with ID: %s", book_id)
            raise ResourceNotFoundError(constants.BOOK, constants.RECORD_ID, book_id)
        return book

    def list_books(self, page_no: int = constants.DEFAULT_PAGE_NO,
                   page_size: int = constants.DEFAULT_PAGE_SIZE,
                   sort_by: str = constants.DEFAULT_SORT_BY,
                   sort_dir: str = constants.DEFAULT_SORT_DIRECTION) -> Page[Book]:
        logger.info("Fetching all books (pageNo: %s, pageSize: %s)", page_no, page_size)
        with self.store.transaction(write=False) as session:
            return session.page(BOOKS, page_no, page_size, sort_by, sort_dir)

    def list_available_books(self, page_no: int = constants.DEFAULT_PAGE_NO,
                             page_size: int = constants.DEFAULT_PAGE_SIZE,
                             sort_by: str = constants.DEFAULT_SORT_BY,
                             sort_dir: str = constants.DEFAULT_SORT_DIRECTION) -> Page[Book]:
        logger.info("Fetching books available to borrow (pageNo: %s, pageSize: %s)", page_no, page_size)
        with self.store.transaction(write=False) as session:
            return session.page(BOOKS, page_no, page_size, sort_by, sort_dir, borrowed=False)

    @staticmethod
    def _validate_isbn(session: StoreSession, request: BookRequest) -> None:
        for existing in session.find_by(BOOKS, isbn=request.isbn):
            if not existing.details.matches(request):
                logger.error("ISBN number must have the same title and author for ISBN: %s", request.isbn)
                raise InvalidBookError(constants.ISBN_MISMATCH)

    # ------------------------- Borrowers ------------------------- #
    def register_borrower(self, request: BorrowerRequest) -> Borrower:
        logger.info("Registering a new borrower: %s", request.email)
        with self.store.transaction() as session:
            if session.exists(BORROWERS, email=request.email):
                logger.error("Borrower email already exists: %s", request.email)
                raise InvalidBorrowerError(constants.EMAIL_EXISTS)
            try:
                borrower = session.insert(BORROWERS, request.to_dict())
            except sqlite3.IntegrityError as e:
                # UNIQUE(email) caught a registration racing with this one
                raise InvalidBorrowerError(constants.EMAIL_EXISTS) from e
        logger.info("Borrower registered successfully with id %s", borrower.id)
        return borrower

    def get_borrower_by_id(self, borrower_id: int) -> Borrower:
        logger.info("Fetching borrower details for ID: %s", borrower_id)
        with self.store.transaction(write=False) as session:
            borrower = session.get_by_id(BORROWERS, borrower_id)
        if borrower is None:
            logger.error("Borrower not found with ID: %s", borrower_id)
            raise ResourceNotFoundError(constants.BORROWER, constants.RECORD_ID, borrower_id)
        return borrower

    def list_borrowers(self, page_no: int = constants.DEFAULT_PAGE_NO,
                       page_size: int = constants.DEFAULT_PAGE_SIZE,
                       sort_by: str = constants.DEFAULT_SORT_BY,
                       sort_dir: str = constants.DEFAULT_SORT_DIRECTION) -> Page[Borrower]:
        logger.info("Fetching all borrowers (pageNo: %s, pageSize: %s)", page_no, page_size)
        with self.store.transaction(write=False) as session:
            return session.page(BORROWERS, page_no, page_size, sort_by, sort_dir)
