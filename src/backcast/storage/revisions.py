"""Append-only edit chains and content reconstruction.

Reading a chain (``load_chain``) needs the database; replaying it
(``replay_chain``, ``build_revision``) is pure CPU work on the loaded rows,
so callers on the event loop can run it in a worker thread.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from backcast import patch
from backcast.errors import ApplyFailureError, RevisionMismatchError, UnknownRevisionError
from backcast.observability import get_logger

from .database import format_timestamp, parse_timestamp
from .models import Edit, HistoryEntry, Revision

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .database import Transaction

logger = get_logger(__name__)


def replay_chain(
    resource_id: int,
    edits: Sequence[Edit],
    up_to_fingerprint: str | None = None,
) -> tuple[str, Edit | None]:
    """Apply ``edits`` in order starting from the empty string.

    Returns the content and the last applied edit. With ``up_to_fingerprint``
    replay stops at the first edit carrying that fingerprint, and the result
    is checked against the stored digest.
    """
    content = ""
    last: Edit | None = None
    for edit in edits:
        content, ok = patch.apply(content, patch.deserialize(edit.patch))
        if not ok:
            raise ApplyFailureError(resource_id, edit.id)
        last = edit
        if len(edit.fingerprint) != patch.FINGERPRINT_LENGTH:
            raise RevisionMismatchError(resource_id, edit.fingerprint, patch.fingerprint_content(content))
        if up_to_fingerprint is not None and edit.fingerprint == up_to_fingerprint:
            actual = patch.fingerprint_content(content)
            if actual != edit.fingerprint:
                raise RevisionMismatchError(resource_id, edit.fingerprint, actual)
            return content, edit

    if up_to_fingerprint is not None:
        raise UnknownRevisionError(resource_id, up_to_fingerprint)
    return content, last


def build_revision(resource_id: int, edits: Sequence[Edit], up_to_fingerprint: str | None = None) -> Revision:
    content, edit = replay_chain(resource_id, edits, up_to_fingerprint)
    if edit is None:
        return Revision(resource_id=resource_id, content="", fingerprint=patch.fingerprint_content(""))
    return Revision(
        resource_id=resource_id,
        content=content,
        fingerprint=edit.fingerprint,
        content_type=edit.content_type,
        etag=edit.etag,
    )


class RevisionStore:
    def load_chain(self, tx: Transaction, resource_id: int) -> list[Edit]:
        rows = tx.execute(
            """
            SELECT id, resource_id, patch, fingerprint, content_type, etag, created_at
            FROM edit
            WHERE resource_id = ?
            ORDER BY id ASC
            """,
            (resource_id,),
        ).fetchall()
        return [
            Edit(
                id=row["id"],
                resource_id=row["resource_id"],
                patch=row["patch"],
                fingerprint=row["fingerprint"],
                created_at=parse_timestamp(row["created_at"]),
                content_type=row["content_type"],
                etag=row["etag"],
            )
            for row in rows
        ]

    def reconstruct(self, tx: Transaction, resource_id: int, up_to_fingerprint: str | None = None) -> str:
        content, _ = replay_chain(resource_id, self.load_chain(tx, resource_id), up_to_fingerprint)
        return content

    def revision(self, tx: Transaction, resource_id: int, up_to_fingerprint: str | None = None) -> Revision:
        return build_revision(resource_id, self.load_chain(tx, resource_id), up_to_fingerprint)

    def commit_if_changed(
        self,
        tx: Transaction,
        resource_id: int,
        new_content: str,
        *,
        content_type: str = "",
        etag: str = "",
    ) -> bool:
        current = self.reconstruct(tx, resource_id)
        return self.append(
            tx,
            resource_id,
            patch.diff(current, new_content),
            new_content,
            content_type=content_type,
            etag=etag,
        )

    def append(
        self,
        tx: Transaction,
        resource_id: int,
        patch_set: patch.PatchSet,
        new_content: str,
        *,
        content_type: str = "",
        etag: str = "",
    ) -> bool:
        """Store ``patch_set`` as the chain's next edit unless it is empty.

        ``patch_set`` must have been computed against the chain's current
        head; the single poll worker is the only writer, so the head cannot
        move between the read and this call.
        """
        if patch.is_empty(patch_set):
            return False

        fingerprint = patch.fingerprint_content(new_content)
        cursor = tx.execute(
            """
            INSERT INTO edit (resource_id, patch, fingerprint, content_type, etag, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                resource_id,
                patch.serialize(patch_set),
                fingerprint,
                content_type,
                etag,
                format_timestamp(datetime.now(UTC)),
            ),
        )
        logger.debug("edit_appended", edit_id=cursor.lastrowid, fingerprint=fingerprint, hunks=len(patch_set))
        return True

    def list_history(self, tx: Transaction, resource_id: int) -> list[HistoryEntry]:
        rows = tx.execute(
            """
            SELECT id, fingerprint, created_at
            FROM edit
            WHERE resource_id = ?
            ORDER BY id ASC
            """,
            (resource_id,),
        ).fetchall()
        return [
            HistoryEntry(
                edit_id=row["id"],
                fingerprint=row["fingerprint"],
                created_at=parse_timestamp(row["created_at"]),
            )
            for row in rows
        ]
