import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings
from errors import StoreError

logger = logging.getLogger(__name__)


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Autocommit mode is used so that :func:`transaction` decides where every
    transaction begins and ends.
    """
    conn = sqlite3.connect(
        db_file or settings.database_file,
        timeout=settings.database_timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def transaction(db_file: Optional[str] = None, immediate: bool = True) -> Iterator[sqlite3.Connection]:
    """Run a block inside a single transaction on a fresh connection.

    ``immediate`` takes the database write lock before the first read, so a
    check-then-act sequence cannot interleave with another writer. The block
    commits on success and rolls back on any exception; sqlite errors that
    escape the block are reported as :class:`StoreError`, as are integers
    too large for an SQLite INTEGER.
    """
    try:
        conn = get_db_connection(db_file)
    except sqlite3.Error as e:
        raise StoreError(f"Could not open database: {e}") from e
    try:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        yield conn
        conn.execute("COMMIT")
    except (sqlite3.Error, OverflowError) as e:
        _rollback(conn)
        logger.error("Transaction aborted: %s", e)
        raise StoreError(f"Database operation failed: {e}") from e
    except BaseException:
        _rollback(conn)
        raise
    finally:
        conn.close()


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables and indexes if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                isbn TEXT NOT NULL,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                borrowed INTEGER NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS borrowers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                version INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS borrowings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL REFERENCES books(id),
                borrower_id INTEGER NOT NULL REFERENCES borrowers(id),
                borrow_date TEXT NOT NULL,
                return_date TEXT,
                version INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn);
            CREATE INDEX IF NOT EXISTS idx_books_borrowed ON books(borrowed);
            CREATE INDEX IF NOT EXISTS idx_borrowings_borrower ON borrowings(borrower_id);
            CREATE INDEX IF NOT EXISTS idx_borrowings_borrower_book ON borrowings(borrower_id, book_id);

            -- at most one open loan per book
            CREATE UNIQUE INDEX IF NOT EXISTS idx_borrowings_open_book
                ON borrowings(book_id) WHERE return_date IS NULL;
        """)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Make sure the database file exists with the current schema."""
    create_tables(db_file)
    logger.debug("Database ready at %s", db_file or settings.database_file)
