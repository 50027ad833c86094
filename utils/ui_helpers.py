import json
import os
from typing import Any, Callable, Dict, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from models import Book, Borrower, BorrowingInfo, Page
from schemas import BookModel, BorrowerModel, BorrowingInfoModel, PageModel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

# --- Row formatting ---
Column = Tuple[str, Callable[[Any], Any]]

BOOK_COLUMNS: Sequence[Column] = (
    ("ID", lambda b: b.id),
    ("ISBN", lambda b: b.isbn),
    ("Title", lambda b: b.title),
    ("Author", lambda b: b.author),
    ("Borrowed", lambda b: "yes" if b.borrowed else "no"),
)

BORROWER_COLUMNS: Sequence[Column] = (
    ("ID", lambda b: b.id),
    ("Name", lambda b: b.name),
    ("Email", lambda b: b.email),
)

BORROWING_COLUMNS: Sequence[Column] = (
    ("ID", lambda i: i.id),
    ("Book", lambda i: f"{i.book.title} (#{i.book.id})"),
    ("Borrower", lambda i: f"{i.borrower.name} (#{i.borrower.id})"),
    ("Borrowed", lambda i: _fmt_date(i.borrow_date)),
    ("Returned", lambda i: _fmt_date(i.return_date) if i.return_date else "-"),
)

def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""

def _plain_line(item: Any) -> str:
    if isinstance(item, Book):
        state = "on loan" if item.borrowed else "available"
        return f"#{item.id} {item.isbn} - {item.title} by {item.author} [{state}]"
    if isinstance(item, Borrower):
        return f"#{item.id} {item.name} <{item.email}>"
    if isinstance(item, BorrowingInfo):
        state = "borrowed" if item.is_borrowed else f"returned {_fmt_date(item.return_date)}"
        return (f"#{item.id} {item.book.title} (book #{item.book.id}) -> {item.borrower.name} "
                f"(borrower #{item.borrower.id}), since {_fmt_date(item.borrow_date)}, {state}")
    return str(item)

# --- JSON (same shape as the HTTP API) ---
def _response_model(item: Any):
    if isinstance(item, Book):
        return BookModel.from_book(item)
    if isinstance(item, Borrower):
        return BorrowerModel.from_borrower(item)
    return BorrowingInfoModel.from_info(item)

def _dump(model) -> str:
    return json.dumps(model.model_dump(by_alias=True, mode="json"), ensure_ascii=False)

def _page_json(page: Page) -> str:
    model_cls = type(_response_model(page.content[0])) if page.content else BookModel
    return _dump(PageModel[model_cls].from_page(page, _response_model))

def _columns_for(item: Any) -> Sequence[Column]:
    if isinstance(item, Book):
        return BOOK_COLUMNS
    if isinstance(item, Borrower):
        return BORROWER_COLUMNS
    return BORROWING_COLUMNS

# --- Printers ---
def print_record(title: str, item: Any) -> None:
    """Print a single book, borrower or borrowing in the current output mode."""
    mode = get_output_mode()
    if mode == "json":
        print(_dump(_response_model(item)))
    elif mode == "rich":
        lines = [f"[bold]{name}:[/] {getter(item)}" for name, getter in _columns_for(item)]
        _console.print(Panel.fit("\n".join(lines), title=title, border_style="blue"))
    else:
        print(title)
        print(_plain_line(item))

def print_page(title: str, page: Page, empty_message: str) -> None:
    """Print one page of results plus its paging summary."""
    mode = get_output_mode()

    if mode == "json":
        print(_page_json(page))
        return

    if not page.content:
        print(empty_message)
        return

    summary = (f"Page {page.page_no + 1} of {page.total_pages} "
               f"({page.number_of_elements} of {page.total_elements} shown)")
    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan", caption=summary)
        columns = _columns_for(page.content[0])
        for name, _ in columns:
            table.add_column(name)
        for item in page.content:
            table.add_row(*[str(getter(item)) for _, getter in columns])
        _console.print(table)
    else:
        for item in page.content:
            print(_plain_line(item))
        print(summary)

def print_errors(errors: Dict[str, str]) -> None:
    """Print one line per offending field."""
    if get_output_mode() == "json":
        print(json.dumps({"errors": errors}, ensure_ascii=False))
        return
    for field, message in errors.items():
        print(f"Invalid {field}: {message}")

def print_error(message: str) -> None:
    if get_output_mode() == "json":
        print(json.dumps({"message": message}, ensure_ascii=False))
    else:
        print(f"Error: {message}")
