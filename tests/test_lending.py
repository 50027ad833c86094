import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest

from errors import BookAlreadyBorrowedError, BookAlreadyReturnedError, BusinessRuleError, ResourceNotFoundError
from models import BookRequest, BorrowerRequest


def _open_loans(db_file, book_id):
    conn = sqlite3.connect(db_file)
    try:
        return conn.execute(
            "SELECT COUNT(*) FROM borrowings WHERE book_id = ? AND return_date IS NULL", (book_id,)
        ).fetchone()[0]
    finally:
        conn.close()


def test_borrow_book(lib, secret_seven, udara):
    info = lib.lending.borrow_book(secret_seven.id, udara.id)

    assert info.is_borrowed is True
    assert info.return_date is None
    assert info.borrow_date is not None
    assert info.book.id == secret_seven.id
    assert info.book.borrowed is True
    assert info.borrower.email == "udarawikum@gmail.com"
    assert lib.catalog.get_book_by_id(secret_seven.id).borrowed is True


def test_borrow_already_borrowed_book(lib, db_file, secret_seven, udara):
    other = lib.catalog.register_borrower(BorrowerRequest("Kamal Perera", "kamal@example.com"))
    lib.lending.borrow_book(secret_seven.id, udara.id)

    with pytest.raises(BookAlreadyBorrowedError, match="already borrowed"):
        lib.lending.borrow_book(secret_seven.id, other.id)

    assert _open_loans(db_file, secret_seven.id) == 1
    assert lib.lending.list_borrowings_by_borrower(other.id).total_elements == 0


def test_borrow_errors_are_business_rule_errors(lib, secret_seven, udara):
    lib.lending.borrow_book(secret_seven.id, udara.id)
    with pytest.raises(BusinessRuleError):
        lib.lending.borrow_book(secret_seven.id, udara.id)


def test_borrow_with_missing_borrower_changes_nothing(lib, secret_seven):
    with pytest.raises(ResourceNotFoundError, match="Borrower not found with id : '42'"):
        lib.lending.borrow_book(secret_seven.id, 42)

    assert lib.catalog.get_book_by_id(secret_seven.id).borrowed is False


def test_borrow_missing_book(lib, udara):
    with pytest.raises(ResourceNotFoundError, match="Library Book not found with id : '5'"):
        lib.lending.borrow_book(5, udara.id)


def test_return_book(lib, secret_seven, udara):
    borrowed = lib.lending.borrow_book(secret_seven.id, udara.id)

    returned = lib.lending.return_book(borrowed.id)

    assert returned.id == borrowed.id
    assert returned.return_date is not None
    assert returned.return_date >= returned.borrow_date
    assert returned.is_borrowed is False
    assert returned.book.borrowed is False
    assert lib.catalog.get_book_by_id(secret_seven.id).borrowed is False


def test_return_twice(lib, secret_seven, udara):
    borrowed = lib.lending.borrow_book(secret_seven.id, udara.id)
    first = lib.lending.return_book(borrowed.id)

    with pytest.raises(BookAlreadyReturnedError, match="already returned"):
        lib.lending.return_book(borrowed.id)

    info = lib.lending.get_borrowing_info(udara.id, secret_seven.id)
    assert info.return_date == first.return_date


def test_return_unknown_borrowing(lib):
    with pytest.raises(ResourceNotFoundError, match="Borrowing not found with id : '1'"):
        lib.lending.return_book(1)


def test_return_old_loan_of_reborrowed_book(lib, db_file, secret_seven, udara):
    first = lib.lending.borrow_book(secret_seven.id, udara.id)
    lib.lending.return_book(first.id)
    second = lib.lending.borrow_book(secret_seven.id, udara.id)

    with pytest.raises(BookAlreadyReturnedError):
        lib.lending.return_book(first.id)

    # the current loan is untouched
    assert lib.catalog.get_book_by_id(secret_seven.id).borrowed is True
    assert lib.lending.get_borrowing_info(udara.id, secret_seven.id).id == second.id
    assert _open_loans(db_file, secret_seven.id) == 1


def test_return_open_loan_of_available_book(lib, db_file, secret_seven, udara):
    borrowed = lib.lending.borrow_book(secret_seven.id, udara.id)
    conn = sqlite3.connect(db_file)
    conn.execute("UPDATE books SET borrowed = 0 WHERE id = ?", (secret_seven.id,))
    conn.commit()
    conn.close()

    with pytest.raises(BookAlreadyReturnedError):
        lib.lending.return_book(borrowed.id)

    assert lib.lending.get_borrowing_info(udara.id, secret_seven.id).return_date is None


def test_borrow_return_borrow_again(lib, db_file, secret_seven, udara):
    for _ in range(3):
        info = lib.lending.borrow_book(secret_seven.id, udara.id)
        assert _open_loans(db_file, secret_seven.id) == 1
        lib.lending.return_book(info.id)
        assert _open_loans(db_file, secret_seven.id) == 0

    assert lib.lending.list_borrowings_by_borrower(udara.id).total_elements == 3


def test_get_borrowing_info_returns_latest(lib, secret_seven, udara):
    first = lib.lending.borrow_book(secret_seven.id, udara.id)
    lib.lending.return_book(first.id)
    second = lib.lending.borrow_book(secret_seven.id, udara.id)

    info = lib.lending.get_borrowing_info(udara.id, secret_seven.id)
    assert info.id == second.id
    assert info.is_borrowed is True


def test_get_borrowing_info_not_found(lib, secret_seven, udara):
    with pytest.raises(ResourceNotFoundError):
        lib.lending.get_borrowing_info(udara.id, secret_seven.id)


def test_list_borrowings_by_borrower_newest_first(lib, udara):
    books = [
        lib.catalog.register_book(BookRequest(f"978000000{i:04d}", f"Title {i}", "Author"))
        for i in range(3)
    ]
    infos = [lib.lending.borrow_book(book.id, udara.id) for book in books]
    lib.lending.return_book(infos[0].id)

    page = lib.lending.list_borrowings_by_borrower(udara.id)
    assert [i.id for i in page.content] == [infos[2].id, infos[1].id, infos[0].id]
    assert [i.is_borrowed for i in page.content] == [True, True, False]
    for info in page.content:
        assert info.is_borrowed == (info.return_date is None)

    ascending = lib.lending.list_borrowings_by_borrower(udara.id, page_size=2, sort_dir="asc")
    assert [i.id for i in ascending.content] == [infos[0].id, infos[1].id]
    assert ascending.total_pages == 2


def test_concurrent_borrows_lend_the_book_once(lib, db_file, secret_seven):
    borrowers = [
        lib.catalog.register_borrower(BorrowerRequest(f"Reader {i}", f"reader{i}@example.com"))
        for i in range(6)
    ]

    def attempt(borrower):
        try:
            lib.lending.borrow_book(secret_seven.id, borrower.id)
            return True
        except BookAlreadyBorrowedError:
            return False

    with ThreadPoolExecutor(max_workers=len(borrowers)) as pool:
        results = list(pool.map(attempt, borrowers))

    assert results.count(True) == 1
    assert _open_loans(db_file, secret_seven.id) == 1


def test_concurrent_returns_close_the_loan_once(lib, db_file, secret_seven, udara):
    borrowed = lib.lending.borrow_book(secret_seven.id, udara.id)

    def attempt(_):
        try:
            return lib.lending.return_book(borrowed.id)
        except BookAlreadyReturnedError:
            return None

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(attempt, range(6)))

    returned = [r for r in results if r is not None]
    assert len(returned) == 1
    assert lib.catalog.get_book_by_id(secret_seven.id).borrowed is False

    conn = sqlite3.connect(db_file)
    try:
        return_date, version = conn.execute(
            "SELECT return_date, version FROM borrowings WHERE id = ?", (borrowed.id,)
        ).fetchone()
    finally:
        conn.close()
    # written by exactly one update
    assert version == 1
    assert return_date == returned[0].return_date.isoformat()


def test_out_of_range_ids_are_not_found(lib, secret_seven, udara):
    with pytest.raises(ResourceNotFoundError):
        lib.lending.return_book(10**20)
    with pytest.raises(ResourceNotFoundError):
        lib.lending.borrow_book(10**20, udara.id)
    with pytest.raises(ResourceNotFoundError):
        lib.lending.borrow_book(secret_seven.id, 10**20)
