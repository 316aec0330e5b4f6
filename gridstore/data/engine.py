"""
SQLite engine adapter for gridstore.

Every store operation opens its own connection through
SqliteEngine.connection() and closes it on every exit path. No connection
or transaction is shared between calls.

Invariants:
    - One connection per operation, closed unconditionally
    - Connections run in autocommit mode; each statement is atomic
    - Rows are sqlite3.Row so columns can be read by name

How to change safely:
    - Keep pragma changes backward compatible with existing database files
    - Never cache a connection on the engine; handlers are used from many threads
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SqliteEngine:
    """Connection factory for one SQLite database file.

    Thread safety:
        Each call creates its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> engine = SqliteEngine("/var/lib/gridstore/grid.db")
        >>> engine.execute("DELETE FROM tokens WHERE validity < ?", (now,))
        3
    """

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the engine.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection for the duration of one operation.

        Yields:
            SQLite connection
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows."""
        with self.connection() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a query and return the first column of the first row."""
        with self.connection() as conn:
            row = conn.execute(sql, params).fetchone()
            return row[0] if row else None
