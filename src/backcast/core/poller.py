from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from backcast import patch
from backcast.errors import BackcastError, FetchError
from backcast.observability import bind_poll_context, get_logger
from backcast.storage import replay_chain

if TYPE_CHECKING:
    from collections.abc import Sequence

    from backcast.fetch import FetchResult
    from backcast.storage import Database, Edit, Resource, ResourceRegistry, RevisionStore

logger = get_logger(__name__)


class Fetcher(Protocol):
    async def fetch(self, url: str, *, etag: str | None = None) -> FetchResult: ...


@dataclass(frozen=True, slots=True)
class PollOutcome:
    resource_id: int
    changed: bool
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _diff_against_head(resource_id: int, edits: Sequence[Edit], content: str) -> patch.PatchSet:
    current, _ = replay_chain(resource_id, edits)
    return patch.diff(current, content)


class Poller:
    """Runs one fetch, diff and commit cycle for a single resource.

    Replaying the chain and diffing run in a worker thread on rows already
    read from the database, so a large rewrite never blocks the event loop.
    """

    def __init__(
        self,
        *,
        database: Database,
        fetcher: Fetcher,
        registry: ResourceRegistry,
        revisions: RevisionStore,
    ) -> None:
        self._database = database
        self._fetcher = fetcher
        self._registry = registry
        self._revisions = revisions

    async def poll(self, resource_id: int) -> PollOutcome:
        with bind_poll_context(resource_id):
            return await self._poll(resource_id)

    async def _poll(self, resource_id: int) -> PollOutcome:
        try:
            resource = self._load(resource_id)
        except (BackcastError, sqlite3.Error) as exc:
            logger.warning("poll_cycle_skipped", error_type=type(exc).__name__, error=str(exc))
            return PollOutcome(resource_id=resource_id, changed=False, error=exc)

        logger.info("poll_cycle_started", url=resource.url)
        try:
            result = await self._fetcher.fetch(resource.url, etag=resource.conditional_token or None)
        except FetchError as exc:
            # last_polled_at stays untouched so the next sweep retries it
            logger.warning("poll_fetch_failed", url=resource.url, error=exc.reason)
            return PollOutcome(resource_id=resource.id, changed=False, error=exc)

        try:
            changed = await self._commit(resource, result)
        except (BackcastError, sqlite3.Error) as exc:
            logger.error("poll_commit_failed", url=resource.url, error_type=type(exc).__name__, error=str(exc))
            return PollOutcome(resource_id=resource.id, changed=False, error=exc)

        logger.info("poll_cycle_completed", url=resource.url, status_code=result.status_code, changed=changed)
        return PollOutcome(resource_id=resource.id, changed=changed)

    def _load(self, resource_id: int) -> Resource:
        with self._database.transaction() as tx:
            return self._registry.get(tx, resource_id)

    async def _commit(self, resource: Resource, result: FetchResult) -> bool:
        patch_set: patch.PatchSet | None = None
        if result.is_modified and result.content is not None:
            with self._database.transaction() as tx:
                edits = self._revisions.load_chain(tx, resource.id)
            patch_set = await asyncio.to_thread(_diff_against_head, resource.id, edits, result.content)

        with self._database.transaction() as tx:
            changed = False
            if patch_set is not None and result.content is not None:
                changed = self._revisions.append(
                    tx,
                    resource.id,
                    patch_set,
                    result.content,
                    content_type=result.content_type or "",
                    etag=result.etag or "",
                )
            self._registry.record_poll(tx, resource.id, result.etag)
        return changed
