from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable, Generic, List, TypeVar

T = TypeVar("T")
U = TypeVar("U")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class BookRequest:
    """Fields a caller supplies to register a book."""

    def __init__(self, isbn: str, title: str, author: str) -> None:
        self.isbn = isbn.strip()
        self.title = title.strip()
        self.author = author.strip()

    def matches(self, other: "BookRequest") -> bool:
        return self.title == other.title and self.author == other.author

    def to_dict(self) -> dict:
        return {"isbn": self.isbn, "title": self.title, "author": self.author}


class Book:
    """A registered copy of a book. ``borrowed`` mirrors whether an open Borrowing exists."""

    def __init__(self, id: int, details: BookRequest, borrowed: bool = False, version: int = 0) -> None:
        self.id = id
        self.details = details
        self.borrowed = bool(borrowed)
        self.version = version

    @property
    def isbn(self) -> str:
        return self.details.isbn

    @property
    def title(self) -> str:
        return self.details.title

    @property
    def author(self) -> str:
        return self.details.author

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data["id"],
            details=BookRequest(data["isbn"], data["title"], data["author"]),
            # SQLite hands booleans back as 0/1
            borrowed=bool(data.get("borrowed", False)),
            version=data.get("version", 0),
        )


class BorrowerRequest:
    def __init__(self, name: str, email: str) -> None:
        self.name = name.strip()
        self.email = email.strip()

    def to_dict(self) -> dict:
        return {"name": self.name, "email": self.email}


class Borrower:
    def __init__(self, id: int, details: BorrowerRequest, version: int = 0) -> None:
        self.id = id
        self.details = details
        self.version = version

    @property
    def name(self) -> str:
        return self.details.name

    @property
    def email(self) -> str:
        return self.details.email

    @staticmethod
    def from_dict(data: dict) -> "Borrower":
        return Borrower(
            id=data["id"],
            details=BorrowerRequest(data["name"], data["email"]),
            version=data.get("version", 0),
        )


class Borrowing:
    """A loan record. Open while ``return_date`` is None."""

    def __init__(self, id: int, book_id: int, borrower_id: int, borrow_date: datetime,
                 return_date: datetime | None = None, version: int = 0) -> None:
        self.id = id
        self.book_id = book_id
        self.borrower_id = borrower_id
        self.borrow_date = borrow_date
        self.return_date = return_date
        self.version = version

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    @staticmethod
    def from_dict(data: dict) -> "Borrowing":
        return Borrowing(
            id=data["id"],
            book_id=data["book_id"],
            borrower_id=data["borrower_id"],
            borrow_date=_parse_timestamp(data["borrow_date"]),
            return_date=_parse_timestamp(data.get("return_date")),
            version=data.get("version", 0),
        )


class BorrowingInfo:
    """Read-only snapshot of a Borrowing together with its book and borrower."""

    def __init__(self, borrowing: Borrowing, book: Book, borrower: Borrower) -> None:
        self.id = borrowing.id
        self.book = book
        self.borrower = borrower
        self.borrow_date = borrowing.borrow_date
        self.return_date = borrowing.return_date

    @property
    def is_borrowed(self) -> bool:
        return self.return_date is None


class Page(Generic[T]):
    """One sorted slice of a larger result set."""

    def __init__(self, content: List[T], page_no: int, page_size: int, total_elements: int) -> None:
        self.content = list(content)
        self.page_no = page_no
        self.page_size = page_size
        self.total_elements = total_elements

    @property
    def number_of_elements(self) -> int:
        return len(self.content)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_elements / self.page_size)

    @property
    def is_last_page(self) -> bool:
        return self.page_no + 1 >= self.total_pages

    def map(self, func: Callable[[T], U]) -> "Page[U]":
        return Page([func(item) for item in self.content], self.page_no, self.page_size, self.total_elements)
