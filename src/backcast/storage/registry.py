from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from backcast.errors import DuplicateResourceError, NotFoundError

from .database import format_timestamp, parse_timestamp
from .models import Resource

if TYPE_CHECKING:
    from datetime import timedelta

    from .database import Transaction


class ResourceRegistry:
    """Resource metadata: URL, last poll time and the cached conditional token."""

    def create(self, tx: Transaction, url: str) -> Resource:
        created_at = datetime.now(UTC)
        try:
            cursor = tx.execute(
                "INSERT INTO resource (url, conditional_token, last_polled_at, created_at) VALUES (?, '', NULL, ?)",
                (url, format_timestamp(created_at)),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateResourceError(url) from exc
        resource_id = cursor.lastrowid
        if resource_id is None:
            msg = "insert did not return a row id"
            raise RuntimeError(msg)
        return Resource(
            id=resource_id,
            url=url,
            conditional_token="",
            last_polled_at=None,
            created_at=created_at,
        )

    def get(self, tx: Transaction, resource_id: int) -> Resource:
        row = tx.execute("SELECT * FROM resource WHERE id = ?", (resource_id,)).fetchone()
        if row is None:
            raise NotFoundError(resource_id)
        return self._row_to_resource(row)

    def find_by_url(self, tx: Transaction, url: str) -> Resource | None:
        row = tx.execute("SELECT * FROM resource WHERE url = ?", (url,)).fetchone()
        return self._row_to_resource(row) if row else None

    def find_stale(self, tx: Transaction, older_than: timedelta, limit: int) -> list[Resource]:
        """Resources never polled or polled before ``now - older_than``, oldest first."""
        if limit <= 0:
            msg = "limit must be positive"
            raise ValueError(msg)
        threshold = datetime.now(UTC) - older_than
        rows = tx.execute(
            """
            SELECT * FROM resource
            WHERE last_polled_at IS NULL OR last_polled_at < ?
            ORDER BY last_polled_at IS NOT NULL, last_polled_at ASC, id ASC
            LIMIT ?
            """,
            (format_timestamp(threshold), limit),
        ).fetchall()
        return [self._row_to_resource(row) for row in rows]

    def record_poll(self, tx: Transaction, resource_id: int, conditional_token: str | None = None) -> None:
        polled_at = format_timestamp(datetime.now(UTC))
        if conditional_token:
            cursor = tx.execute(
                "UPDATE resource SET last_polled_at = ?, conditional_token = ? WHERE id = ?",
                (polled_at, conditional_token, resource_id),
            )
        else:
            cursor = tx.execute(
                "UPDATE resource SET last_polled_at = ? WHERE id = ?",
                (polled_at, resource_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(resource_id)

    def _row_to_resource(self, row: sqlite3.Row) -> Resource:
        return Resource(
            id=row["id"],
            url=row["url"],
            conditional_token=row["conditional_token"],
            last_polled_at=parse_timestamp(row["last_polled_at"]) if row["last_polled_at"] else None,
            created_at=parse_timestamp(row["created_at"]),
        )
