"""Outbox operation commands.

This module provides CLI commands for operating the notification outbox:
- Run a single dispatch pass or the cleanup sweep
- Show backlog counts and list dead letters
- Run the dispatch scheduler as a standalone worker process
"""

from __future__ import annotations

import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import click

from outbox_service.cli.utils import coro, error, header, info, key_value, print_json, success, warning
from outbox_service.infra.database import close_database, get_sessionmaker, init_database
from outbox_service.infra.outbox.models import OutboxStatus
from outbox_service.infra.outbox.repository import OutboxRepository
from outbox_service.infra.outbox.runtime import build_outbox_runtime

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from outbox_service.infra.outbox.runtime import OutboxRuntime


@asynccontextmanager
async def _runtime() -> AsyncIterator[OutboxRuntime]:
    runtime = build_outbox_runtime()
    try:
        yield runtime
    finally:
        await runtime.aclose()
        await close_database()


@click.group(name="outbox")
def outbox() -> None:
    """Notification outbox operations."""


@outbox.command(name="dispatch")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def dispatch(output_format: str) -> None:
    """Run one dispatch pass and print its report."""
    try:
        async with _runtime() as runtime:
            report = await runtime.dispatcher.dispatch_pending()
    except Exception as e:
        error(f"Dispatch pass failed: {e}")
        sys.exit(1)

    if output_format == "json":
        print_json(report.as_dict())
        return

    header("Dispatch Pass")
    for key, value in report.as_dict().items():
        if key != "errors":
            key_value(key, value)
    for message in report.errors:
        warning(message)

    if report.errors:
        sys.exit(1)
    success(f"Claimed {report.claimed}, completed {report.completed}")


@outbox.command(name="cleanup")
@coro
async def cleanup() -> None:
    """Delete COMPLETED and FAILED records past the retention window."""
    try:
        async with _runtime() as runtime:
            if not runtime.cleanup.enabled:
                warning("Cleanup is disabled (OUTBOX_CLEANUP_RETENTION_SECONDS <= 0)")
                return
            deleted = await runtime.cleanup.run()
    except Exception as e:
        error(f"Cleanup failed: {e}")
        sys.exit(1)

    success(f"Deleted {deleted} expired outbox records")


@outbox.command(name="stats")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def stats(output_format: str) -> None:
    """Show outbox record counts by status and the dead letter count."""
    repository = OutboxRepository()
    try:
        async with get_sessionmaker()() as session:
            counts = await repository.count_by_status(session)
            dead_letters = await repository.count_dead_letters(session)
    except Exception as e:
        error(f"Failed to read outbox stats: {e}")
        sys.exit(1)
    finally:
        await close_database()

    if output_format == "json":
        print_json({**counts, "dead_letters": dead_letters})
        return

    header("Outbox Status")
    for status in OutboxStatus:
        key_value(status.value, counts[status.value])
    key_value("DEAD_LETTERS", dead_letters)


@outbox.command(name="dead-letters")
@click.option("--limit", default=20, type=click.IntRange(1, 500), help="Maximum entries to show")
@click.option("--destination", default=None, help="Only show this destination")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def dead_letters(limit: int, destination: str | None, output_format: str) -> None:
    """List the most recent dead letters."""
    repository = OutboxRepository()
    try:
        async with get_sessionmaker()() as session:
            entries = await repository.list_dead_letters(
                session, limit=limit, destination_name=destination
            )
    except Exception as e:
        error(f"Failed to list dead letters: {e}")
        sys.exit(1)
    finally:
        await close_database()

    if output_format == "json":
        print_json(
            [
                {
                    "id": entry.id,
                    "original_id": entry.original_id,
                    "event_type": entry.event_type,
                    "destination_name": entry.destination_name,
                    "attempts": entry.attempts,
                    "last_error": entry.last_error,
                    "failed_at": entry.failed_at,
                    "tenant_id": entry.tenant_id,
                }
                for entry in entries
            ]
        )
        return

    header("Dead Letters")
    if not entries:
        info("No dead letters found")
        return

    click.echo()
    click.echo(f"{'Failed At':<22} {'Destination':<20} {'Attempts':<9} {'Original ID':<38} Error")
    click.echo("-" * 110)
    for entry in entries:
        failed_at = entry.failed_at.strftime("%Y-%m-%d %H:%M:%S")
        last_error = (entry.last_error or "")[:60]
        click.echo(
            f"{failed_at:<22} {entry.destination_name:<20} {entry.attempts:<9} "
            f"{entry.original_id!s:<38} {last_error}"
        )
    click.echo()
    success(f"Shown: {len(entries)}")


@outbox.command(name="run")
@click.option(
    "--create-tables/--no-create-tables",
    default=None,
    help="Create the outbox tables before starting (default: DB_CREATE_TABLES)",
)
@coro
async def run(create_tables: bool | None) -> None:
    """Run the dispatch and cleanup scheduler until interrupted."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        async with _runtime() as runtime:
            await init_database(create_tables=create_tables)
            await runtime.scheduler.start()
            info(
                f"Outbox worker {runtime.dispatcher.worker_id} running "
                f"(every {runtime.settings.dispatch_interval_seconds}s), Ctrl+C to stop"
            )
            await stop.wait()
            info("Stopping, waiting for in-flight ticks...")
    except Exception as e:
        error(f"Outbox worker failed: {e}")
        sys.exit(1)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    success("Outbox worker stopped")
