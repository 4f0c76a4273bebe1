"""
cli.py — Click CLI entrypoint for the sync workers.

Usage:
    mgnrega-sync sync [--force] [--dry-run]
    mgnrega-sync schedule
    mgnrega-sync status
    mgnrega-sync freshness
    mgnrega-sync export --format csv --state Kerala --output metrics.csv
    mgnrega-sync clear --confirm CLEAR_CACHE
    mgnrega-sync health
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import click
import structlog

from mgnrega_shared.config import settings
from mgnrega_shared.db import SupabaseConnectionProvider
from mgnrega_shared.exceptions import ConfigurationError, ConfirmationRequiredError
from mgnrega_pipeline.loaders.repository import InMemoryRepository, MetricsRepository
from mgnrega_pipeline.loaders.supabase_repository import SupabaseRepository
from mgnrega_pipeline.pipelines.scheduler import SyncScheduler
from mgnrega_pipeline.reporting import FreshnessReporter, clear_cache, export_metrics
from mgnrega_pipeline.sources.datagov import DataGovClient
from mgnrega_pipeline.utils.logging import configure_logging

log = structlog.get_logger(__name__)


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@contextlib.contextmanager
def _store(dry_run: bool = False) -> Iterator[MetricsRepository]:
    """Open the store for one command; dry runs use a throwaway in-memory store."""
    if dry_run:
        yield InMemoryRepository()
        return
    provider = SupabaseConnectionProvider()
    try:
        provider.open()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        yield SupabaseRepository(provider)
    finally:
        provider.close()


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--log-format",
    default=settings.log_format,
    type=click.Choice(["console", "json"]),
    help="Log renderer",
)
def main(log_level: str, log_format: str) -> None:
    """MGNREGA data synchronization workers."""
    configure_logging(log_level, log_format)


@main.command()
@click.option("--force", is_flag=True, help="Sync even if data was updated recently.")
@click.option("--dry-run", is_flag=True, help="Reconcile into memory; write nothing.")
def sync(force: bool, dry_run: bool) -> None:
    """Run one synchronization now."""
    log.info("cli_sync", force=force, dry_run=dry_run)

    async def _run() -> dict[str, Any]:
        with _store(dry_run) as repository:
            async with DataGovClient() as client:
                scheduler = SyncScheduler.for_pipeline(client, repository)
                result = await scheduler.trigger_sync(force=force)
                return result.to_dict()

    payload = asyncio.run(_run())
    _echo_json(payload)
    if not payload["success"]:
        raise SystemExit(1)


@main.command()
def schedule() -> None:
    """Run the cron-triggered sync until interrupted."""

    async def _serve() -> None:
        with _store() as repository:
            async with DataGovClient() as client:
                scheduler = SyncScheduler.for_pipeline(client, repository)
                try:
                    scheduler.start()
                except ConfigurationError as exc:
                    raise click.ClickException(str(exc)) from exc
                click.echo(f"Sync scheduled: {settings.sync_cron} ({settings.sync_timezone})")
                try:
                    await asyncio.Event().wait()
                finally:
                    scheduler.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("Scheduler stopped.")


@main.command()
def status() -> None:
    """Show cache counts, per-state breakdown, and health flags."""

    async def _run() -> dict[str, Any]:
        with _store() as repository:
            report = await FreshnessReporter(repository).get_cache_status()
            return report.model_dump(mode="json")

    _echo_json(asyncio.run(_run()))


@main.command()
def freshness() -> None:
    """Show the age of the newest data, overall and per state."""

    async def _run() -> dict[str, Any]:
        with _store() as repository:
            report = await FreshnessReporter(repository).get_freshness()
            return report.model_dump(mode="json")

    payload = asyncio.run(_run())
    _echo_json(payload)
    if payload["overall"]["is_stale"]:
        click.echo("Data is stale.", err=True)


@main.command()
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json")
@click.option("--state", default=None, help="Case-insensitive state name filter.")
@click.option("--year", type=int, default=None)
@click.option("--month", type=click.IntRange(1, 12), default=None)
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None)
def export(fmt: str, state: str | None, year: int | None, month: int | None, output: Path | None) -> None:
    """Export cached metrics as JSON or CSV."""

    async def _run() -> dict[str, Any] | str:
        with _store() as repository:
            return await export_metrics(
                repository, fmt=fmt, state_name=state, year=year, month=month
            )

    result = asyncio.run(_run())
    text = result if isinstance(result, str) else json.dumps(result, indent=2, default=str)
    if output is None:
        click.echo(text)
    else:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Export written to {output}")


@main.command()
@click.option("--confirm", required=True, help='Must be "CLEAR_CACHE".')
def clear(confirm: str) -> None:
    """Delete every cached metric and district."""

    async def _run() -> dict[str, int]:
        with _store() as repository:
            return await clear_cache(repository, confirm=confirm)

    try:
        deleted = asyncio.run(_run())
    except ConfirmationRequiredError as exc:
        raise click.BadParameter(str(exc), param_hint="--confirm") from exc
    _echo_json({"message": "Cache cleared successfully", "deleted": deleted})


@main.command()
def health() -> None:
    """Check that the store is reachable."""
    provider = SupabaseConnectionProvider()
    try:
        provider.open()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        healthy = provider.health_check()
    finally:
        provider.close()
    click.echo("ok" if healthy else "unreachable")
    if not healthy:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
