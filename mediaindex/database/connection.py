"""Database connection management."""

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Self

from mediaindex.errors import StoreTransactionFailed

from .schema import create_schema

logger = logging.getLogger(__name__)

LOCK_RETRY_DELAY = 0.25


class Database:
    """SQLite database connection wrapper with context manager support.

    Each thread must open its own ``Database``; connections are not shared.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            try:
                create_schema(conn, self.db_path)
            except Exception:
                conn.close()
                raise
            self._conn = conn
        return self._conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction, rolling back on any error.

        ``sqlite3`` errors are re-raised as :class:`StoreTransactionFailed`;
        other exceptions propagate unchanged after the rollback.
        """
        conn = self.conn
        self._begin(conn)
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreTransactionFailed(f"Transaction on {self.db_path} failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        try:
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreTransactionFailed(f"Commit on {self.db_path} failed: {e}") from e

    def _begin(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute("BEGIN IMMEDIATE")
            return
        except sqlite3.OperationalError as e:
            if not _is_lock_error(e):
                raise StoreTransactionFailed(f"Could not start transaction: {e}") from e
            logger.warning("Database %s is locked, retrying once", self.db_path)

        time.sleep(LOCK_RETRY_DELAY)
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise StoreTransactionFailed(
                f"Database {self.db_path} is still locked after retry: {e}"
            ) from e

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message
