"""Request and response models shared by the HTTP API and the CLI."""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

import constants
from models import Book, BookRequest, Borrower, BorrowerRequest, BorrowingInfo, Page
from utils.validators import ISBNValidator, TextValidator

T = TypeVar("T")


def _text(v: Any, message: str) -> Any:
    """Strip a required text field. Values that are not text fall through to the ``str`` type check."""
    if isinstance(v, int) and not isinstance(v, bool):
        # JSON numbers bind as their decimal text
        v = str(v)
    if v is not None and not isinstance(v, str):
        return v
    return TextValidator.require(v, message)


# --- Requests ---
class BookCreateModel(BaseModel):
    isbn: str = Field(description="10 to 13 characters")
    title: str
    author: str

    @field_validator("isbn", mode="before")
    @classmethod
    def check_isbn(cls, v: Any) -> Any:
        v = _text(v, constants.ISBN_REQUIRED)
        error = ISBNValidator.validate(v) if isinstance(v, str) else None
        if error:
            raise ValueError(error)
        return v

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, v: Any) -> Any:
        return _text(v, constants.TITLE_REQUIRED)

    @field_validator("author", mode="before")
    @classmethod
    def check_author(cls, v: Any) -> Any:
        return _text(v, constants.AUTHOR_REQUIRED)

    def to_request(self) -> BookRequest:
        return BookRequest(self.isbn, self.title, self.author)


class BorrowerCreateModel(BaseModel):
    name: str
    email: str

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, v: Any) -> Any:
        return _text(v, constants.NAME_REQUIRED)

    @field_validator("email", mode="before")
    @classmethod
    def check_email_present(cls, v: Any) -> Any:
        # Blank emails get their own message before the format check runs
        return _text(v, constants.EMAIL_REQUIRED)

    @field_validator("email")
    @classmethod
    def check_email_format(cls, v: str) -> str:
        try:
            _, email = validate_email(v)
        except PydanticCustomError as e:
            raise ValueError(constants.EMAIL_INVALID) from e
        return email

    def to_request(self) -> BorrowerRequest:
        return BorrowerRequest(self.name, self.email)


# --- Responses ---
class BookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="bookId")
    isbn: str
    title: str
    author: str
    borrowed: bool

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        return cls(id=book.id, isbn=book.isbn, title=book.title, author=book.author, borrowed=book.borrowed)


class BorrowerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="borrowerId")
    name: str
    email: str

    @classmethod
    def from_borrower(cls, borrower: Borrower) -> "BorrowerModel":
        return cls(id=borrower.id, name=borrower.name, email=borrower.email)


class BorrowingInfoModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="borrowingId")
    borrower: BorrowerModel
    book_info: BookModel = Field(alias="bookInfo")
    borrow_date: datetime = Field(alias="borrowDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")

    @computed_field(alias="isBorrowed")
    @property
    def is_borrowed(self) -> bool:
        return self.return_date is None

    @classmethod
    def from_info(cls, info: BorrowingInfo) -> "BorrowingInfoModel":
        return cls(
            id=info.id,
            borrower=BorrowerModel.from_borrower(info.borrower),
            book_info=BookModel.from_book(info.book),
            borrow_date=info.borrow_date,
            return_date=info.return_date,
        )


class PageModel(BaseModel, Generic[T]):
    model_config = ConfigDict(populate_by_name=True)

    content: List[T]
    page_no: int = Field(alias="pageNo")
    page_size: int = Field(alias="pageSize")
    total_elements: int = Field(alias="totalElements")
    number_of_elements: int = Field(alias="numberOfElements")
    total_pages: int = Field(alias="totalPages")
    last: bool

    @classmethod
    def from_page(cls, page: Page, convert) -> "PageModel":
        return cls(
            content=[convert(item) for item in page.content],
            page_no=page.page_no,
            page_size=page.page_size,
            total_elements=page.total_elements,
            number_of_elements=page.number_of_elements,
            total_pages=page.total_pages,
            last=page.is_last_page,
        )


class MessageModel(BaseModel):
    message: str


def field_errors(exc: Any) -> Dict[str, str]:
    """Flatten pydantic/FastAPI validation errors into ``{field: message}``."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        ctx_error = (err.get("ctx") or {}).get("error")
        errors.setdefault(field, str(ctx_error) if ctx_error else err.get("msg", "Invalid value"))
    return errors
