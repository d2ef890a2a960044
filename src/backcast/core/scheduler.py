"""Single worker that serializes every poll cycle.

Explicit refresh requests and the periodic stale sweep are both consumed by
one loop, so at most one poll cycle runs at a time and every write to an
edit chain is totally ordered.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from backcast.errors import BackcastError, SchedulerStoppedError
from backcast.observability import get_logger

if TYPE_CHECKING:
    from backcast.core.poller import PollOutcome, Poller
    from backcast.storage import Database, Resource, ResourceRegistry

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_STALE_AFTER = timedelta(hours=1)
DEFAULT_SWEEP_LIMIT = 5


@dataclass(slots=True)
class _RefreshRequest:
    resource_id: int
    accepted: asyncio.Future[None]
    completed: asyncio.Future[PollOutcome]


class RefreshScheduler:
    def __init__(
        self,
        *,
        poller: Poller,
        database: Database,
        registry: ResourceRegistry,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        sweep_limit: int = DEFAULT_SWEEP_LIMIT,
    ) -> None:
        if interval_seconds <= 0:
            msg = "interval_seconds must be positive"
            raise ValueError(msg)
        if sweep_limit <= 0:
            msg = "sweep_limit must be positive"
            raise ValueError(msg)

        self._poller = poller
        self._database = database
        self._registry = registry
        self._interval_seconds = interval_seconds
        self._stale_after = stale_after
        self._sweep_limit = sweep_limit
        self._requests: asyncio.Queue[_RefreshRequest] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info("scheduler_started", interval_seconds=self._interval_seconds, sweep_limit=self._sweep_limit)

    async def shutdown(self) -> None:
        """Let the in-flight cycle finish, then stop without starting another."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("scheduler_stopped")

    async def submit(self, resource_id: int) -> asyncio.Future[PollOutcome]:
        """Hand a refresh request to the worker.

        Returns once the worker has accepted the request. The returned future
        resolves with the cycle's outcome.
        """
        if not self.running or self._stop_event.is_set():
            msg = "scheduler is not running"
            raise SchedulerStoppedError(msg)

        loop = asyncio.get_running_loop()
        request = _RefreshRequest(
            resource_id=resource_id,
            accepted=loop.create_future(),
            completed=loop.create_future(),
        )
        await self._requests.put(request)
        await request.accepted
        return request.completed

    async def sweep(self) -> list[PollOutcome]:
        """Poll up to ``sweep_limit`` stale resources once, outside the worker loop."""
        if self.running:
            msg = "sweep() cannot run beside the worker loop"
            raise RuntimeError(msg)
        self._stop_event.clear()
        return await self._sweep()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_sweep_at = loop.time() + self._interval_seconds
        try:
            while not self._stop_event.is_set():
                request = await self._next_request(timeout=max(0.0, next_sweep_at - loop.time()))
                if self._stop_event.is_set():
                    if request is not None:
                        self._reject(request)
                    break
                if request is None:
                    await self._sweep()
                    next_sweep_at = loop.time() + self._interval_seconds
                    continue
                await self._serve(request)
        finally:
            self._reject_pending()

    async def _next_request(self, timeout: float) -> _RefreshRequest | None:
        getter = asyncio.ensure_future(self._requests.get())
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({getter, stopper}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not getter.done():
                getter.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None

    async def _serve(self, request: _RefreshRequest) -> None:
        if request.accepted.done():
            # submitter went away before the handoff
            return
        request.accepted.set_result(None)
        try:
            outcome = await self._poller.poll(request.resource_id)
        except Exception as exc:
            logger.exception("poll_cycle_crashed", resource_id=request.resource_id)
            if not request.completed.done():
                request.completed.set_exception(exc)
            return
        if not request.completed.done():
            request.completed.set_result(outcome)

    async def _sweep(self) -> list[PollOutcome]:
        try:
            stale = self._find_stale()
        except (BackcastError, sqlite3.Error) as exc:
            logger.error("sweep_failed", error_type=type(exc).__name__, error=str(exc))
            return []

        logger.info("sweep_started", stale=len(stale))
        outcomes: list[PollOutcome] = []
        for resource in stale:
            if self._stop_event.is_set():
                break
            try:
                outcomes.append(await self._poller.poll(resource.id))
            except Exception:
                logger.exception("poll_cycle_crashed", resource_id=resource.id)
        logger.info(
            "sweep_completed",
            polled=len(outcomes),
            changed=sum(1 for outcome in outcomes if outcome.changed),
            failed=sum(1 for outcome in outcomes if not outcome.ok),
        )
        return outcomes

    def _find_stale(self) -> list[Resource]:
        with self._database.transaction() as tx:
            return self._registry.find_stale(tx, self._stale_after, self._sweep_limit)

    def _reject(self, request: _RefreshRequest) -> None:
        if not request.accepted.done():
            request.accepted.set_exception(SchedulerStoppedError("scheduler stopped before accepting request"))

    def _reject_pending(self) -> None:
        while not self._requests.empty():
            self._reject(self._requests.get_nowait())
