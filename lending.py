"""Borrow and return lifecycle of library books.

A book is either Available (``borrowed`` is false, no open Borrowing) or
OnLoan (``borrowed`` is true, exactly one open Borrowing). ``borrow_book``
moves it from Available to OnLoan and ``return_book`` moves it back; each
transition runs in one write transaction so the flag and the loan record
change together or not at all.
"""

import logging
import sqlite3
from datetime import datetime, timezone

import constants
from errors import BookAlreadyBorrowedError, BookAlreadyReturnedError, ResourceNotFoundError
from models import Book, Borrower, Borrowing, BorrowingInfo, Page
from store import BOOKS, BORROWERS, BORROWINGS, RecordStore, StoreSession

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LendingManager:
    """Sole writer of loan records and of the books' ``borrowed`` flag."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def borrow_book(self, book_id: int, borrower_id: int) -> BorrowingInfo:
        logger.info("Attempting to borrow book with ID: %s by borrower ID: %s", book_id, borrower_id)
        with self.store.transaction() as session:
            borrower = self._get_borrower(session, borrower_id)
            book = self._get_book(session, book_id)
            if session.exists(BORROWINGS, book_id=book_id, return_date=None):
                logger.error("Library Book with ID: %s is already borrowed", book_id)
                raise BookAlreadyBorrowedError(constants.ALREADY_BORROWED)

            book = session.update(BOOKS, book.id, book.version, {"borrowed": True})
            try:
                borrowing = session.insert(BORROWINGS, {
                    "book_id": book.id,
                    "borrower_id": borrower.id,
                    "borrow_date": _now().isoformat(),
                    "return_date": None,
                })
            except sqlite3.IntegrityError as e:
                # the one-open-loan-per-book index refused a second open record
                raise BookAlreadyBorrowedError(constants.ALREADY_BORROWED) from e

        logger.info("Library Book with ID: %s borrowed successfully by borrower ID: %s", book_id, borrower_id)
        return BorrowingInfo(borrowing, book, borrower)

    def return_book(self, borrowing_id: int) -> BorrowingInfo:
        logger.info("Returning book for borrowing ID: %s", borrowing_id)
        with self.store.transaction() as session:
            borrowing = session.get_by_id(BORROWINGS, borrowing_id)
            if borrowing is None:
                logger.error("Borrowing not found with ID: %s", borrowing_id)
                raise ResourceNotFoundError(constants.BORROWING, constants.RECORD_ID, borrowing_id)
            book = self._get_book(session, borrowing.book_id)
            self._check_return_status(borrowing, book)

            book = session.update(BOOKS, book.id, book.version, {"borrowed": False})
            borrowing = session.update(BORROWINGS, borrowing.id, borrowing.version,
                                       {"return_date": _now().isoformat()})
            borrower = self._get_borrower(session, borrowing.borrower_id)

        logger.info("Library Book returned successfully for borrowing ID: %s", borrowing_id)
        return BorrowingInfo(borrowing, book, borrower)

    def get_borrowing_info(self, borrower_id: int, book_id: int) -> BorrowingInfo:
        """Most recent loan of ``book_id`` by ``borrower_id``."""
        logger.info("Getting borrowing info for borrower ID: %s and book ID: %s", borrower_id, book_id)
        with self.store.transaction(write=False) as session:
            borrowing = session.find_latest(BORROWINGS, "borrow_date", borrower_id=borrower_id, book_id=book_id)
            if borrowing is None:
                logger.error("Borrowing record not found for borrower ID: %s and book ID: %s", borrower_id, book_id)
                raise ResourceNotFoundError(constants.BORROWING, constants.RECORD_ID, book_id)
            return self._to_info(session, borrowing)

    def list_borrowings_by_borrower(self, borrower_id: int,
                                    page_no: int = constants.DEFAULT_PAGE_NO,
                                    page_size: int = constants.DEFAULT_PAGE_SIZE,
                                    sort_by: str = constants.DEFAULT_SORT_BY,
                                    sort_dir: str = constants.BORROWING_SORT_DIRECTION) -> Page[BorrowingInfo]:
        """Every loan of a borrower, open and closed."""
        logger.info("Getting borrowing info for borrower ID: %s (pageNo: %s, pageSize: %s)",
                    borrower_id, page_no, page_size)
        with self.store.transaction(write=False) as session:
            page = session.page(BORROWINGS, page_no, page_size, sort_by, sort_dir, borrower_id=borrower_id)
            return page.map(lambda borrowing: self._to_info(session, borrowing))

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _check_return_status(borrowing: Borrowing, book: Book) -> None:
        # A still-open record whose book is already Available was closed through another path.
        if not borrowing.is_open or not book.borrowed:
            logger.error("Library Book already returned by borrower for ID: %s", borrowing.id)
            raise BookAlreadyReturnedError(constants.ALREADY_RETURNED)

    @staticmethod
    def _get_borrower(session: StoreSession, borrower_id: int) -> Borrower:
        borrower = session.get_by_id(BORROWERS, borrower_id)
        if borrower is None:
            logger.error("Borrower not found with ID: %s", borrower_id)
            raise ResourceNotFoundError(constants.BORROWER, constants.RECORD_ID, borrower_id)
        return borrower

    @staticmethod
    def _get_book(session: StoreSession, book_id: int) -> Book:
        book = session.get_by_id(BOOKS, book_id)
        if book is None:
            logger.error("Library Book not found with ID: %s", book_id)
            raise ResourceNotFoundError(constants.BOOK, constants.RECORD_ID, book_id)
        return book

    def _to_info(self, session: StoreSession, borrowing: Borrowing) -> BorrowingInfo:
        return BorrowingInfo(
            borrowing,
            self._get_book(session, borrowing.book_id),
            self._get_borrower(session, borrowing.borrower_id),
        )
