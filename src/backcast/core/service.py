from __future__ import annotations

import asyncio
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING

from backcast.errors import BackcastError, ErrorKind
from backcast.observability import get_logger
from backcast.storage import build_revision

if TYPE_CHECKING:
    from backcast.core.poller import PollOutcome
    from backcast.core.scheduler import RefreshScheduler
    from backcast.storage import Database, HistoryEntry, Resource, ResourceRegistry, Revision, RevisionStore

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    status: int
    kind: ErrorKind
    error: str

    def to_dict(self) -> dict[str, object]:
        return {"error": self.error, "kind": str(self.kind)}


def error_response(exc: Exception) -> ErrorResponse:
    if isinstance(exc, BackcastError):
        status = HTTPStatus.BAD_REQUEST if exc.kind is ErrorKind.CLIENT else HTTPStatus.INTERNAL_SERVER_ERROR
        return ErrorResponse(status=status, kind=exc.kind, error=str(exc))
    return ErrorResponse(status=HTTPStatus.INTERNAL_SERVER_ERROR, kind=ErrorKind.SERVER, error="internal error")


class BackcastService:
    """Operations exposed to the request-routing layer."""

    def __init__(
        self,
        *,
        database: Database,
        registry: ResourceRegistry,
        revisions: RevisionStore,
        scheduler: RefreshScheduler,
    ) -> None:
        self._database = database
        self._registry = registry
        self._revisions = revisions
        self._scheduler = scheduler

    async def create_resource(self, url: str, *, refresh: bool = True) -> Resource:
        with self._database.transaction() as tx:
            resource = self._registry.create(tx, url)
        logger.info("resource_created", resource_id=resource.id, url=url)
        if refresh:
            await self._scheduler.submit(resource.id)
        return resource

    def get_resource(self, resource_id: int) -> Resource:
        with self._database.transaction() as tx:
            return self._registry.get(tx, resource_id)

    async def trigger_refresh(self, resource_id: int) -> asyncio.Future[PollOutcome]:
        self.get_resource(resource_id)
        completed = await self._scheduler.submit(resource_id)
        logger.info("refresh_accepted", resource_id=resource_id)
        return completed

    def get_history(self, resource_id: int) -> list[HistoryEntry]:
        with self._database.transaction() as tx:
            self._registry.get(tx, resource_id)
            return self._revisions.list_history(tx, resource_id)

    async def get_content(self, resource_id: int, fingerprint: str | None = None) -> str:
        return (await self.get_revision(resource_id, fingerprint)).content

    async def get_revision(self, resource_id: int, fingerprint: str | None = None) -> Revision:
        """Latest revision, or the one identified by ``fingerprint``, with its response headers."""
        with self._database.transaction() as tx:
            self._registry.get(tx, resource_id)
            edits = self._revisions.load_chain(tx, resource_id)
        return await asyncio.to_thread(build_revision, resource_id, edits, fingerprint)
