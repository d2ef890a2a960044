from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class Resource:
    id: int
    url: str
    conditional_token: str
    last_polled_at: datetime | None
    created_at: datetime

    def __post_init__(self) -> None:
        if not self.url:
            msg = "url cannot be empty"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "url": self.url,
            "conditional_token": self.conditional_token,
            "last_polled_at": self.last_polled_at.isoformat() if self.last_polled_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class Edit:
    """One stored row of an edit chain, as read back from the database."""

    id: int
    resource_id: int
    patch: str
    fingerprint: str
    created_at: datetime
    content_type: str = ""
    etag: str = ""


@dataclass(frozen=True, slots=True)
class Revision:
    """Reconstructed content plus the response metadata recorded with it."""

    resource_id: int
    content: str
    fingerprint: str
    content_type: str = ""
    etag: str = ""

    @property
    def content_length(self) -> int:
        return len(self.content.encode("utf-8"))

    def headers(self) -> dict[str, str]:
        headers = {
            "Content-Length": str(self.content_length),
            # revisions fetched without an ETag are identified by their digest
            "ETag": self.etag or self.fingerprint,
        }
        if self.content_type:
            headers["Content-Type"] = self.content_type
        return headers

    def to_dict(self) -> dict[str, object]:
        return {
            "resource_id": self.resource_id,
            "fingerprint": self.fingerprint,
            "headers": self.headers(),
        }


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    edit_id: int
    fingerprint: str
    created_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "edit_id": self.edit_id,
            "fingerprint": self.fingerprint,
            "created_at": self.created_at.isoformat(),
        }
