from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from backcast import patch
from backcast.core import BackcastService
from backcast.errors import DuplicateResourceError, NotFoundError, SchedulerStoppedError, UnknownRevisionError
from tests.test_utils.factories import FetchResultFactory

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from backcast.core import RefreshScheduler
    from backcast.storage import Database, ResourceRegistry, RevisionStore
    from tests.test_utils.fakes import FakeFetcher

pytestmark = [pytest.mark.integration]


@pytest.fixture
async def service(
    database: Database,
    registry: ResourceRegistry,
    revisions: RevisionStore,
    scheduler: RefreshScheduler,
) -> AsyncIterator[BackcastService]:
    await scheduler.start()
    yield BackcastService(database=database, registry=registry, revisions=revisions, scheduler=scheduler)
    await scheduler.shutdown()


async def test_create_resource_triggers_first_poll(service: BackcastService, fetcher: FakeFetcher) -> None:
    fetcher.script("http://x/a", FetchResultFactory.build(content="v1"))

    resource = await service.create_resource("http://x/a")
    outcome = await asyncio.wait_for(await service.trigger_refresh(resource.id), timeout=5)

    assert outcome.changed is False
    assert await service.get_content(resource.id) == "v1"
    assert [entry.fingerprint for entry in service.get_history(resource.id)] == [patch.fingerprint_content("v1")]
    assert service.get_resource(resource.id).last_polled_at is not None


async def test_create_without_refresh_does_not_fetch(service: BackcastService, fetcher: FakeFetcher) -> None:
    resource = await service.create_resource("http://x/a", refresh=False)

    assert fetcher.calls == []
    assert service.get_resource(resource.id).last_polled_at is None


async def test_duplicate_create_is_rejected(service: BackcastService) -> None:
    await service.create_resource("http://x/a", refresh=False)

    with pytest.raises(DuplicateResourceError):
        await service.create_resource("http://x/a", refresh=False)


async def test_unknown_resource_is_reported_by_every_lookup(service: BackcastService) -> None:
    with pytest.raises(NotFoundError):
        service.get_resource(99)
    with pytest.raises(NotFoundError):
        service.get_history(99)
    with pytest.raises(NotFoundError):
        await service.get_content(99)
    with pytest.raises(NotFoundError):
        await service.trigger_refresh(99)


async def test_content_at_fingerprint(service: BackcastService, fetcher: FakeFetcher) -> None:
    fetcher.script("http://x/a", FetchResultFactory.build(content="v1"), FetchResultFactory.build(content="v2"))
    resource = await service.create_resource("http://x/a", refresh=False)

    await asyncio.wait_for(await service.trigger_refresh(resource.id), timeout=5)
    await asyncio.wait_for(await service.trigger_refresh(resource.id), timeout=5)

    assert await service.get_content(resource.id) == "v2"
    assert await service.get_content(resource.id, patch.fingerprint_content("v1")) == "v1"
    with pytest.raises(UnknownRevisionError):
        await service.get_content(resource.id, "deadbeef" * 5)


async def test_refresh_after_shutdown_is_rejected(service: BackcastService, scheduler: RefreshScheduler) -> None:
    resource = await service.create_resource("http://x/a", refresh=False)
    await scheduler.shutdown()

    with pytest.raises(SchedulerStoppedError):
        await service.trigger_refresh(resource.id)


async def test_revision_carries_content_type_and_etag(service: BackcastService, fetcher: FakeFetcher) -> None:
    fetcher.script(
        "http://x/a",
        FetchResultFactory.build(content="<rss/>", etag='"r1"', content_type="application/rss+xml"),
        FetchResultFactory.build(content="<rss>two</rss>", etag=None, content_type=None),
    )
    resource = await service.create_resource("http://x/a", refresh=False)
    await asyncio.wait_for(await service.trigger_refresh(resource.id), timeout=5)
    await asyncio.wait_for(await service.trigger_refresh(resource.id), timeout=5)

    first = await service.get_revision(resource.id, patch.fingerprint_content("<rss/>"))
    latest = await service.get_revision(resource.id)

    assert first.content == "<rss/>"
    assert first.headers() == {"Content-Type": "application/rss+xml", "Content-Length": "6", "ETag": '"r1"'}
    assert latest.headers() == {"Content-Length": "14", "ETag": patch.fingerprint_content("<rss>two</rss>")}


async def test_revision_of_never_fetched_resource_is_empty(service: BackcastService) -> None:
    resource = await service.create_resource("http://x/a", refresh=False)

    revision = await service.get_revision(resource.id)

    assert revision.content == ""
    assert revision.headers() == {"Content-Length": "0", "ETag": patch.fingerprint_content("")}
