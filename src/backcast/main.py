from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import httpx
import typer
from dotenv import load_dotenv

from backcast.config import AppConfig, ConfigError, load_config, resolve_database_path
from backcast.core import BackcastService, Poller, RefreshScheduler, error_response
from backcast.errors import BackcastError
from backcast.fetch import HttpFetcher
from backcast.observability import configure_logging, get_logger
from backcast.storage import Database, ResourceRegistry, RevisionStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

logger = get_logger(__name__)

app = typer.Typer(add_completion=False)

ConfigOption = Annotated[Path, typer.Option("-c", "--config")]


@dataclass(frozen=True, slots=True)
class ApplicationComponents:
    config: AppConfig
    db: Database
    client: httpx.AsyncClient
    registry: ResourceRegistry
    scheduler: RefreshScheduler
    service: BackcastService


@asynccontextmanager
async def create_application(config_path: Path) -> AsyncIterator[ApplicationComponents]:
    config = load_config(config_path)

    db = Database(resolve_database_path(config, config_path))
    db.initialize()

    registry = ResourceRegistry()
    revisions = RevisionStore()

    client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.fetch.timeout_seconds),
        headers={"User-Agent": config.fetch.user_agent},
        follow_redirects=True,
    )
    fetcher = HttpFetcher(
        client,
        max_attempts=config.fetch.max_attempts,
        max_retry_wait=config.fetch.max_retry_wait_seconds,
    )
    poller = Poller(database=db, fetcher=fetcher, registry=registry, revisions=revisions)
    scheduler = RefreshScheduler(
        poller=poller,
        database=db,
        registry=registry,
        interval_seconds=config.scheduler.sweep_interval_seconds,
        stale_after=config.scheduler.stale_after,
        sweep_limit=config.scheduler.sweep_limit,
    )
    service = BackcastService(database=db, registry=registry, revisions=revisions, scheduler=scheduler)

    try:
        yield ApplicationComponents(
            config=config,
            db=db,
            client=client,
            registry=registry,
            scheduler=scheduler,
            service=service,
        )
    finally:
        await scheduler.shutdown()
        await client.aclose()
        db.close()


def seed_resources(components: ApplicationComponents) -> int:
    created = 0
    for url in components.config.resources:
        with components.db.transaction() as tx:
            if components.registry.find_by_url(tx, url) is not None:
                continue
            components.registry.create(tx, url)
        created += 1
    if created:
        logger.info("resources_seeded", created=created)
    return created


def _execute(command: Callable[[], Awaitable[object]]) -> None:
    load_dotenv()
    configure_logging()
    try:
        result = asyncio.run(command())
    except ConfigError as exc:
        typer.echo(json.dumps({"error": str(exc)}), err=True)
        raise typer.Exit(code=1) from exc
    except BackcastError as exc:
        typer.echo(json.dumps(error_response(exc).to_dict()), err=True)
        raise typer.Exit(code=1) from exc
    if result is None:
        return
    if isinstance(result, str):
        typer.echo(result, nl=False)
    else:
        typer.echo(json.dumps(result, ensure_ascii=False))


@app.command()
def run(
    config: ConfigOption,
    once: Annotated[bool, typer.Option("--once")] = False,
) -> None:
    _execute(lambda: _run(config, once=once))


async def _run(config_path: Path, *, once: bool) -> None:
    async with create_application(config_path) as components:
        seed_resources(components)
        if once:
            await components.scheduler.sweep()
            return
        await components.scheduler.start()
        await asyncio.Event().wait()


@app.command()
def add(config: ConfigOption, url: str) -> None:
    _execute(lambda: _add(config, url))


async def _add(config_path: Path, url: str) -> dict[str, object]:
    async with create_application(config_path) as components:
        resource = await components.service.create_resource(url, refresh=False)
        await components.scheduler.start()
        outcome = await (await components.service.trigger_refresh(resource.id))
        return {**components.service.get_resource(resource.id).to_dict(), "changed": outcome.changed}


@app.command()
def show(config: ConfigOption, resource_id: int) -> None:
    _execute(lambda: _show(config, resource_id))


async def _show(config_path: Path, resource_id: int) -> dict[str, object]:
    async with create_application(config_path) as components:
        return components.service.get_resource(resource_id).to_dict()


@app.command()
def history(config: ConfigOption, resource_id: int) -> None:
    _execute(lambda: _history(config, resource_id))


async def _history(config_path: Path, resource_id: int) -> list[dict[str, object]]:
    async with create_application(config_path) as components:
        return [entry.to_dict() for entry in components.service.get_history(resource_id)]


@app.command()
def content(
    config: ConfigOption,
    resource_id: int,
    fingerprint: Annotated[str | None, typer.Option("--fingerprint")] = None,
) -> None:
    _execute(lambda: _content(config, resource_id, fingerprint))


async def _content(config_path: Path, resource_id: int, fingerprint: str | None) -> str:
    async with create_application(config_path) as components:
        return await components.service.get_content(resource_id, fingerprint)


@app.command()
def revision(
    config: ConfigOption,
    resource_id: int,
    fingerprint: Annotated[str | None, typer.Option("--fingerprint")] = None,
) -> None:
    _execute(lambda: _revision(config, resource_id, fingerprint))


async def _revision(config_path: Path, resource_id: int, fingerprint: str | None) -> dict[str, object]:
    async with create_application(config_path) as components:
        return (await components.service.get_revision(resource_id, fingerprint)).to_dict()


@app.command()
def refresh(config: ConfigOption, resource_id: int) -> None:
    _execute(lambda: _refresh(config, resource_id))


async def _refresh(config_path: Path, resource_id: int) -> dict[str, object]:
    async with create_application(config_path) as components:
        await components.scheduler.start()
        outcome = await (await components.service.trigger_refresh(resource_id))
        if outcome.error is not None:
            raise outcome.error
        return {"resource_id": resource_id, "changed": outcome.changed}


if __name__ == "__main__":
    app()
