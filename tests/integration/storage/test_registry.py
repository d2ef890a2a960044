from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from freezegun import freeze_time

from backcast.errors import DuplicateResourceError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from backcast.storage import Database, Resource, ResourceRegistry

NOW = datetime(2025, 1, 27, 12, 0, tzinfo=UTC)


@freeze_time(NOW)
def test_create_returns_unpolled_resource(database: Database, registry: ResourceRegistry) -> None:
    with database.transaction() as tx:
        resource = registry.create(tx, "http://x/a")

    assert resource.url == "http://x/a"
    assert resource.conditional_token == ""
    assert resource.last_polled_at is None
    assert resource.created_at == NOW


def test_create_and_get_round_trip(database: Database, registry: ResourceRegistry) -> None:
    with database.transaction() as tx:
        created = registry.create(tx, "https://example.com/feed.xml")

    with database.transaction() as tx:
        assert registry.get(tx, created.id) == created


def test_ids_are_distinct(create_resource: Callable[[str], Resource]) -> None:
    first = create_resource("https://example.com/a")
    second = create_resource("https://example.com/b")

    assert first.id != second.id


def test_duplicate_url_is_rejected(database: Database, registry: ResourceRegistry) -> None:
    with database.transaction() as tx:
        registry.create(tx, "https://example.com/feed.xml")

    with pytest.raises(DuplicateResourceError), database.transaction() as tx:
        registry.create(tx, "https://example.com/feed.xml")


def test_get_missing_raises_not_found(database: Database, registry: ResourceRegistry) -> None:
    with pytest.raises(NotFoundError), database.transaction() as tx:
        registry.get(tx, 999)


def test_record_poll_sets_timestamp_and_token(
    database: Database,
    registry: ResourceRegistry,
    create_resource: Callable[[str], Resource],
) -> None:
    resource = create_resource("https://example.com/feed.xml")

    with freeze_time(NOW), database.transaction() as tx:
        registry.record_poll(tx, resource.id, '"v1"')

    with database.transaction() as tx:
        polled = registry.get(tx, resource.id)

    assert polled.last_polled_at == NOW
    assert polled.conditional_token == '"v1"'


def test_record_poll_without_token_keeps_previous_token(
    database: Database,
    registry: ResourceRegistry,
    create_resource: Callable[[str], Resource],
) -> None:
    resource = create_resource("https://example.com/feed.xml")

    with freeze_time(NOW - timedelta(hours=1)), database.transaction() as tx:
        registry.record_poll(tx, resource.id, '"v1"')
    with freeze_time(NOW), database.transaction() as tx:
        registry.record_poll(tx, resource.id, None)

    with database.transaction() as tx:
        polled = registry.get(tx, resource.id)

    assert polled.conditional_token == '"v1"'
    assert polled.last_polled_at == NOW


def test_record_poll_missing_resource_raises_not_found(database: Database, registry: ResourceRegistry) -> None:
    with pytest.raises(NotFoundError), database.transaction() as tx:
        registry.record_poll(tx, 999)


def test_find_stale_orders_never_polled_then_oldest(
    database: Database,
    registry: ResourceRegistry,
    create_resource: Callable[[str], Resource],
) -> None:
    three_hours = create_resource("https://example.com/3h")
    two_hours = create_resource("https://example.com/2h")
    never = create_resource("https://example.com/never")
    ten_minutes = create_resource("https://example.com/10m")

    for resource, age in [
        (three_hours, timedelta(hours=3)),
        (two_hours, timedelta(hours=2)),
        (ten_minutes, timedelta(minutes=10)),
    ]:
        with freeze_time(NOW - age), database.transaction() as tx:
            registry.record_poll(tx, resource.id)

    with freeze_time(NOW), database.transaction() as tx:
        stale = registry.find_stale(tx, timedelta(hours=1), limit=2)
        all_stale = registry.find_stale(tx, timedelta(hours=1), limit=10)

    assert [resource.id for resource in stale] == [never.id, three_hours.id]
    assert [resource.id for resource in all_stale] == [never.id, three_hours.id, two_hours.id]


def test_find_stale_rejects_non_positive_limit(database: Database, registry: ResourceRegistry) -> None:
    with pytest.raises(ValueError, match="limit must be positive"), database.transaction() as tx:
        registry.find_stale(tx, timedelta(hours=1), limit=0)
