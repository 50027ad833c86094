"""Generic record access over the sqlite tables.

Managers open a :class:`StoreSession` through :meth:`RecordStore.transaction`
and do all their reads and writes for one operation inside it.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import constants
import database
from errors import StoreError, ValidationError
from models import Book, Borrower, Borrowing, Page

logger = logging.getLogger(__name__)


class Table:
    """Column metadata for one table and how to turn a row into a model."""

    def __init__(self, name: str, columns: Tuple[str, ...], factory: Callable[[dict], Any],
                 sortable: Tuple[str, ...], aliases: Optional[Dict[str, str]] = None) -> None:
        self.name = name
        self.columns = columns
        self.factory = factory
        self.sortable = sortable
        self.aliases = aliases or {}

    def column(self, field: str) -> str:
        name = self.aliases.get(field, field)
        if name != "id" and name not in self.columns:
            raise ValueError(f"Unknown column {field!r} for table {self.name}")
        return name

    def sort_column(self, field: str) -> str:
        name = self.aliases.get(field, field)
        if name not in self.sortable:
            allowed = ", ".join(self.sortable)
            raise ValidationError({"sortBy": f"Cannot sort by '{field}'. Allowed: {allowed}"})
        return name


BOOKS = Table(
    "books",
    columns=("isbn", "title", "author", "borrowed"),
    factory=Book.from_dict,
    sortable=("id", "isbn", "title", "author", "borrowed"),
    aliases={"bookId": "id"},
)

BORROWERS = Table(
    "borrowers",
    columns=("name", "email"),
    factory=Borrower.from_dict,
    sortable=("id", "name", "email"),
    aliases={"borrowerId": "id"},
)

BORROWINGS = Table(
    "borrowings",
    columns=("book_id", "borrower_id", "borrow_date", "return_date"),
    factory=Borrowing.from_dict,
    sortable=("id", "book_id", "borrower_id", "borrow_date", "return_date"),
    aliases={
        "borrowingId": "id",
        "bookId": "book_id",
        "borrowerId": "borrower_id",
        "borrowDate": "borrow_date",
        "returnDate": "return_date",
    },
)


def _sort_order(sort_dir: str) -> str:
    # Anything other than "asc" sorts descending.
    return "ASC" if (sort_dir or "").lower() == "asc" else "DESC"


class StoreSession:
    """Queries bound to the connection of one open transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _where(self, table: Table, filters: Dict[str, Any]) -> Tuple[str, List[Any]]:
        clauses, params = [], []
        for field, value in filters.items():
            column = table.column(field)
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)
        sql = " WHERE " + " AND ".join(clauses) if clauses else ""
        return sql, params

    def get_by_id(self, table: Table, record_id: int) -> Optional[Any]:
        if abs(record_id) > constants.SQLITE_MAX_INTEGER:
            return None
        row = self.conn.execute(f"SELECT * FROM {table.name} WHERE id = ?", (record_id,)).fetchone()
        return table.factory(dict(row)) if row else None

    def find_by(self, table: Table, **filters: Any) -> List[Any]:
        where, params = self._where(table, filters)
        rows = self.conn.execute(f"SELECT * FROM {table.name}{where} ORDER BY id", params).fetchall()
        return [table.factory(dict(row)) for row in rows]

    def find_latest(self, table: Table, order_by: str, **filters: Any) -> Optional[Any]:
        where, params = self._where(table, filters)
        column = table.column(order_by)
        row = self.conn.execute(
            f"SELECT * FROM {table.name}{where} ORDER BY {column} DESC, id DESC LIMIT 1", params
        ).fetchone()
        return table.factory(dict(row)) if row else None

    def exists(self, table: Table, **filters: Any) -> bool:
        where, params = self._where(table, filters)
        row = self.conn.execute(f"SELECT 1 FROM {table.name}{where} LIMIT 1", params).fetchone()
        return row is not None

    def insert(self, table: Table, values: Dict[str, Any]) -> Any:
        columns = [table.column(k) for k in values]
        placeholders = ", ".join("?" for _ in columns)
        cursor = self.conn.execute(
            f"INSERT INTO {table.name} ({', '.join(columns)}) VALUES ({placeholders})",
            list(values.values()),
        )
        return self.get_by_id(table, cursor.lastrowid)

    def update(self, table: Table, record_id: int, version: int, values: Dict[str, Any]) -> Any:
        """Update a record only if nobody changed it since ``version`` was read."""
        assignments = ", ".join(f"{table.column(k)} = ?" for k in values)
        cursor = self.conn.execute(
            f"UPDATE {table.name} SET {assignments}, version = version + 1 WHERE id = ? AND version = ?",
            [*values.values(), record_id, version],
        )
        if cursor.rowcount == 0:
            raise StoreError(f"{table.name} record {record_id} was modified by another operation")
        return self.get_by_id(table, record_id)

    def page(self, table: Table, page_no: int, page_size: int, sort_by: str, sort_dir: str,
             **filters: Any) -> Page:
        errors = {}
        if page_no < 0:
            errors["pageNo"] = "Page number must not be negative"
        if page_size < 1:
            errors["pageSize"] = "Page size must be at least 1"
        elif page_size > constants.SQLITE_MAX_INTEGER:
            errors["pageSize"] = "Page size is too large"
        elif page_no * page_size > constants.SQLITE_MAX_INTEGER:
            errors["pageNo"] = "Page is beyond the last possible record"
        if errors:
            raise ValidationError(errors)
        column = table.sort_column(sort_by)
        where, params = self._where(table, filters)

        total = self.conn.execute(f"SELECT COUNT(*) FROM {table.name}{where}", params).fetchone()[0]
        # id as secondary key keeps page boundaries stable when sort values repeat
        rows = self.conn.execute(
            f"SELECT * FROM {table.name}{where} ORDER BY {column} {_sort_order(sort_dir)}, id ASC "
            f"LIMIT ? OFFSET ?",
            [*params, page_size, page_no * page_size],
        ).fetchall()
        return Page([table.factory(dict(row)) for row in rows], page_no, page_size, total)


class RecordStore:
    """Entry point to the record store for one database file."""

    def __init__(self, db_file: str) -> None:
        self.db_file = db_file

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[StoreSession]:
        with database.transaction(self.db_file, immediate=write) as conn:
            yield StoreSession(conn)

    def ping(self) -> bool:
        try:
            with self.transaction(write=False) as session:
                session.conn.execute("SELECT 1")
            return True
        except StoreError:
            logger.exception("Database health check failed")
            return False
