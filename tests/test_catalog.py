import pytest

from errors import InvalidBookError, InvalidBorrowerError, ResourceNotFoundError, ValidationError
from models import BookRequest, BorrowerRequest


def test_register_book_starts_available(lib):
    book = lib.catalog.register_book(BookRequest("0-061-96436-0", "Secret seven adventures", "Enid Bliton"))

    assert book.id is not None
    assert book.borrowed is False
    assert book.title == "Secret seven adventures"
    assert lib.catalog.get_book_by_id(book.id).isbn == "0-061-96436-0"


def test_register_second_copy_with_same_details(lib, secret_seven):
    copy = lib.catalog.register_book(BookRequest("0-061-96436-0", "Secret seven adventures", "Enid Bliton"))

    assert copy.id != secret_seven.id
    assert lib.catalog.list_books().total_elements == 2


@pytest.mark.parametrize("title, author", [
    ("Secret seven adventures", "Someone Else"),
    ("Famous five", "Enid Bliton"),
])
def test_register_book_with_conflicting_details_is_rejected(lib, secret_seven, title, author):
    with pytest.raises(InvalidBookError, match="ISBN number must have the same title and author"):
        lib.catalog.register_book(BookRequest("0-061-96436-0", title, author))

    assert lib.catalog.list_books().total_elements == 1


def test_same_isbn_books_share_title_and_author(lib):
    lib.catalog.register_book(BookRequest("1234567890", "Ulysses", "James Joyce"))
    lib.catalog.register_book(BookRequest("1234567890", "Ulysses", "James Joyce"))
    with pytest.raises(InvalidBookError):
        lib.catalog.register_book(BookRequest("1234567890", "Dubliners", "James Joyce"))

    books = lib.catalog.list_books().content
    assert {(b.title, b.author) for b in books if b.isbn == "1234567890"} == {("Ulysses", "James Joyce")}


def test_register_borrower(lib):
    borrower = lib.catalog.register_borrower(BorrowerRequest("Udara Wikum", "udarawikum@gmail.com"))

    assert borrower.id is not None
    assert lib.catalog.get_borrower_by_id(borrower.id).email == "udarawikum@gmail.com"


def test_register_borrower_with_existing_email_is_rejected(lib, udara):
    with pytest.raises(InvalidBorrowerError, match="Email ID already exists"):
        lib.catalog.register_borrower(BorrowerRequest("Another Person", "udarawikum@gmail.com"))

    assert lib.catalog.list_borrowers().total_elements == 1


def test_get_missing_records(lib):
    with pytest.raises(ResourceNotFoundError) as book_err:
        lib.catalog.get_book_by_id(99)
    assert str(book_err.value) == "Library Book not found with id : '99'"

    with pytest.raises(ResourceNotFoundError) as borrower_err:
        lib.catalog.get_borrower_by_id(7)
    assert borrower_err.value.resource_name == "Borrower"
    assert borrower_err.value.field_value == 7


def test_list_books_pages(lib):
    for i in range(12):
        lib.catalog.register_book(BookRequest(f"97800000000{i:02d}", f"Book {i:02d}", "Author"))

    first = lib.catalog.list_books()
    assert first.page_no == 0
    assert first.page_size == 10
    assert first.number_of_elements == 10
    assert first.total_elements == 12
    assert first.total_pages == 2
    assert first.is_last_page is False
    assert [b.id for b in first.content] == sorted(b.id for b in first.content)

    second = lib.catalog.list_books(page_no=1)
    assert second.number_of_elements == 2
    assert second.is_last_page is True


def test_list_books_sorted_by_title_descending(lib):
    for title in ("Beta", "Alpha", "Gamma"):
        lib.catalog.register_book(BookRequest(f"isbn-{title}-00", title, "Author"))

    page = lib.catalog.list_books(sort_by="title", sort_dir="desc")
    assert [b.title for b in page.content] == ["Gamma", "Beta", "Alpha"]


def test_list_with_unknown_sort_field(lib):
    with pytest.raises(ValidationError) as err:
        lib.catalog.list_books(sort_by="publisher")
    assert "sortBy" in err.value.field_errors


def test_list_with_bad_paging(lib):
    with pytest.raises(ValidationError) as err:
        lib.catalog.list_borrowers(page_no=-1, page_size=0)
    assert set(err.value.field_errors) == {"pageNo", "pageSize"}


def test_list_available_books_skips_borrowed(lib, secret_seven, udara):
    other = lib.catalog.register_book(BookRequest("9780199535675", "Ulysses", "James Joyce"))
    lib.lending.borrow_book(secret_seven.id, udara.id)

    available = lib.catalog.list_available_books()
    assert [b.id for b in available.content] == [other.id]
    assert available.total_elements == 1


def test_empty_listing_is_last_page(lib):
    page = lib.catalog.list_borrowers()
    assert page.content == []
    assert page.total_pages == 0
    assert page.is_last_page is True


def test_huge_ids_and_pages_fail_cleanly(lib):
    with pytest.raises(ResourceNotFoundError):
        lib.catalog.get_book_by_id(99999999999999999999)
    with pytest.raises(ResourceNotFoundError):
        lib.catalog.get_borrower_by_id(99999999999999999999)

    with pytest.raises(ValidationError) as err:
        lib.catalog.list_books(page_no=10**17, page_size=100)
    assert "pageNo" in err.value.field_errors
