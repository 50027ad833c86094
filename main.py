import logging
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError

import constants
from config import configure_logging, settings
from errors import LibraryError, ValidationError
from library import Library
from schemas import BookCreateModel, BorrowerCreateModel, field_errors
from utils.ui_helpers import print_error, print_errors, print_page, print_record, set_output_mode

APP_NAME = "Library Lending CLI"

logger = logging.getLogger(__name__)


class LibraryManager:
    """Holds one Library per database file for the lifetime of the CLI process."""
    _instance: Optional[Library] = None
    _db_file: Optional[str] = None

    @classmethod
    def configure(cls, db_file: Optional[str]) -> None:
        cls._db_file = db_file

    @classmethod
    def get_instance(cls) -> Library:
        wanted = cls._db_file or settings.database_file
        if cls._instance is None or cls._instance.db_file != wanted:
            cls._instance = Library(db_file=wanted)
        return cls._instance


def handle_errors(func):
    """Turn library errors into a printed message and exit code 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            print_errors(e.field_errors)
            raise typer.Exit(code=1)
        except LibraryError as e:
            print_error(e.message)
            raise typer.Exit(code=1)
    return wrapper


def _parse(model_cls, **fields):
    try:
        return model_cls(**fields)
    except PydanticValidationError as e:
        raise ValidationError(field_errors(e)) from e


# --- Typer CLI app ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db_file: Optional[str] = typer.Option(
        None,
        "--db-file",
        help="SQLite database file (default: LIBRARY_DB_FILE or library.db)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
):
    """Global options for the CLI."""
    # Errors are already printed for the user; logs only with --verbose
    configure_logging("DEBUG" if verbose else "CRITICAL")
    if output:
        set_output_mode(output)
    LibraryManager.configure(db_file)

# --- Catalog commands ---
@app.command("register-book")
@handle_errors
def cli_register_book(isbn: str, title: str, author: str):
    """Register a copy of a book."""
    payload = _parse(BookCreateModel, isbn=isbn, title=title, author=author)
    book = LibraryManager.get_instance().catalog.register_book(payload.to_request())
    print_record("Book registered", book)

@app.command("register-borrower")
@handle_errors
def cli_register_borrower(name: str, email: str):
    """Register a borrower."""
    payload = _parse(BorrowerCreateModel, name=name, email=email)
    borrower = LibraryManager.get_instance().catalog.register_borrower(payload.to_request())
    print_record("Borrower registered", borrower)

@app.command("book")
@handle_errors
def cli_book(book_id: int):
    """Show a book by ID."""
    print_record("Book Found", LibraryManager.get_instance().catalog.get_book_by_id(book_id))

@app.command("borrower")
@handle_errors
def cli_borrower(borrower_id: int):
    """Show a borrower by ID."""
    print_record("Borrower Found", LibraryManager.get_instance().catalog.get_borrower_by_id(borrower_id))

@app.command("books")
@handle_errors
def cli_books(
    page: int = typer.Option(constants.DEFAULT_PAGE_NO, "--page", help="Zero-based page number"),
    size: int = typer.Option(constants.DEFAULT_PAGE_SIZE, "--size"),
    sort_by: str = typer.Option(constants.DEFAULT_SORT_BY, "--sort-by"),
    sort_dir: str = typer.Option(constants.DEFAULT_SORT_DIRECTION, "--sort-dir"),
):
    """List all books."""
    result = LibraryManager.get_instance().catalog.list_books(page, size, sort_by, sort_dir)
    print_page("Books", result, "No books in library.")

@app.command("available")
@handle_errors
def cli_available(
    page: int = typer.Option(constants.DEFAULT_PAGE_NO, "--page"),
    size: int = typer.Option(constants.DEFAULT_PAGE_SIZE, "--size"),
    sort_by: str = typer.Option(constants.DEFAULT_SORT_BY, "--sort-by"),
    sort_dir: str = typer.Option(constants.DEFAULT_SORT_DIRECTION, "--sort-dir"),
):
    """List books that can be borrowed right now."""
    result = LibraryManager.get_instance().catalog.list_available_books(page, size, sort_by, sort_dir)
    print_page("Available Books", result, "No books available to borrow.")

@app.command("borrowers")
@handle_errors
def cli_borrowers(
    page: int = typer.Option(constants.DEFAULT_PAGE_NO, "--page"),
    size: int = typer.Option(constants.DEFAULT_PAGE_SIZE, "--size"),
    sort_by: str = typer.Option(constants.DEFAULT_SORT_BY, "--sort-by"),
    sort_dir: str = typer.Option(constants.DEFAULT_SORT_DIRECTION, "--sort-dir"),
):
    """List all borrowers."""
    result = LibraryManager.get_instance().catalog.list_borrowers(page, size, sort_by, sort_dir)
    print_page("Borrowers", result, "No borrowers registered.")

# --- Lending commands ---
@app.command("borrow")
@handle_errors
def cli_borrow(book_id: int, borrower_id: int):
    """Lend a book to a borrower."""
    info = LibraryManager.get_instance().lending.borrow_book(book_id, borrower_id)
    print_record("Book borrowed", info)

@app.command("return")
@handle_errors
def cli_return(borrowing_id: int):
    """Return the book of a borrowing."""
    info = LibraryManager.get_instance().lending.return_book(borrowing_id)
    print_record("Book returned", info)

@app.command("borrowing-info")
@handle_errors
def cli_borrowing_info(borrower_id: int, book_id: int):
    """Show the latest borrowing of a book by a borrower."""
    info = LibraryManager.get_instance().lending.get_borrowing_info(borrower_id, book_id)
    print_record("Borrowing", info)

@app.command("history")
@handle_errors
def cli_history(
    borrower_id: int,
    page: int = typer.Option(constants.DEFAULT_PAGE_NO, "--page"),
    size: int = typer.Option(constants.DEFAULT_PAGE_SIZE, "--size"),
    sort_by: str = typer.Option(constants.DEFAULT_SORT_BY, "--sort-by"),
    sort_dir: str = typer.Option(constants.BORROWING_SORT_DIRECTION, "--sort-dir"),
):
    """List every borrowing of a borrower, newest first by default."""
    result = LibraryManager.get_instance().lending.list_borrowings_by_borrower(
        borrower_id, page, size, sort_by, sort_dir)
    print_page("Borrowings", result, f"No borrowings for borrower {borrower_id}.")

# --- Server ---
@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
):
    """Run the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    subprocess.run([sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)])


if __name__ == "__main__":
    app()
