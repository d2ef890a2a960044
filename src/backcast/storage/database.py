from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from backcast.errors import TransactionError
from backcast.observability import get_logger

from .sql import SCHEMA_SQL

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

logger = get_logger(__name__)


def format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Transaction:
    """Unit of work handed to every store call of one poll cycle or request."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection: sqlite3.Connection | None = connection

    @property
    def active(self) -> bool:
        return self._connection is not None

    def execute(
        self,
        query: str,
        params: Sequence[object] | None = None,
    ) -> sqlite3.Cursor:
        if self._connection is None:
            msg = "transaction is closed"
            raise TransactionError(msg)
        return self._connection.execute(query, params or ())

    def _close(self) -> None:
        self._connection = None


class Database:
    def __init__(self, path: Path | str) -> None:
        self._path = path
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            # autocommit mode; transactions are opened explicitly by transaction()
            self._connection = sqlite3.connect(self._path, isolation_level=None)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> None:
        connection = self.connect()
        connection.executescript(SCHEMA_SQL)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Begin on entry, commit on success, roll back on any error."""
        connection = self.connect()
        if connection.in_transaction:
            msg = "a transaction is already open on this connection"
            raise TransactionError(msg)
        try:
            connection.execute("BEGIN")
        except sqlite3.Error as exc:
            msg = f"begin failed: {exc}"
            raise TransactionError(msg) from exc

        tx = Transaction(connection)
        try:
            yield tx
        except BaseException:
            tx._close()
            self._rollback(connection)
            raise

        tx._close()
        try:
            connection.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback(connection)
            msg = f"commit failed: {exc}"
            raise TransactionError(msg) from exc

    def _rollback(self, connection: sqlite3.Connection) -> None:
        if not connection.in_transaction:
            return
        try:
            connection.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.error("transaction_rollback_failed", error=str(exc))
            msg = f"rollback failed: {exc}"
            raise TransactionError(msg) from exc

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
