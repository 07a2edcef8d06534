"""
Database connection management.

Provides the single shared SQLite connection used by every storage
operation, wrapped in a handle that serializes access across threads.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import NotInitializedError, StorageUnavailableError

DB_FILENAME = "usage.db"
BUSY_TIMEOUT_MS = 5000


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection that can be shared between threads.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection in autocommit mode with WAL journaling

    Raises:
        StorageUnavailableError: If the file cannot be opened
    """
    path = Path(db_path)
    try:
        conn = sqlite3.connect(
            str(path),
            check_same_thread=False,
            isolation_level=None,
        )
    except sqlite3.Error as e:
        raise StorageUnavailableError(f"Cannot open database {path}: {e}") from e

    try:
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.Error as e:
        conn.close()
        raise StorageUnavailableError(f"Cannot open database {path}: {e}") from e
    return conn


class StorageHandle:
    """Owned handle to the shared connection.

    Every statement runs while holding the handle's lock, so a single
    connection can serve concurrent readers and writers. Once closed,
    the handle rejects all further use with NotInitializedError.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Path):
        self.db_path = db_path
        self._conn = conn
        self._lock = threading.RLock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection with exclusive access."""
        with self._lock:
            if self._closed:
                raise NotInitializedError("Usage ledger is not initialized")
            yield self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one write transaction, rolled back on error."""
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
