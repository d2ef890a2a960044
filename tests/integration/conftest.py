from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from backcast.core import Poller, RefreshScheduler
from backcast.storage import Database, ResourceRegistry, RevisionStore
from tests.test_utils.fakes import FakeFetcher

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

    from backcast.storage import Resource


@pytest.fixture
def database(tmp_path: Path) -> Generator[Database, None, None]:
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def registry() -> ResourceRegistry:
    return ResourceRegistry()


@pytest.fixture
def revisions() -> RevisionStore:
    return RevisionStore()


@pytest.fixture
def create_resource(database: Database, registry: ResourceRegistry) -> Callable[[str], Resource]:
    def create(url: str) -> Resource:
        with database.transaction() as tx:
            return registry.create(tx, url)

    return create


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def poller(database: Database, fetcher: FakeFetcher, registry: ResourceRegistry, revisions: RevisionStore) -> Poller:
    return Poller(database=database, fetcher=fetcher, registry=registry, revisions=revisions)


@pytest.fixture
def scheduler(poller: Poller, database: Database, registry: ResourceRegistry) -> RefreshScheduler:
    return RefreshScheduler(poller=poller, database=database, registry=registry, interval_seconds=3600)
