"""Main CLI entry point for outbox-service management commands."""

import click

from outbox_service.cli.commands import db, outbox, server
from outbox_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="outbox-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Outbox Service CLI - operate the employee notification outbox.

    \b
    Command Groups:
      db         Database migrations and bootstrap
      outbox     Dispatch, cleanup and inspection of the outbox
      serve      Run the HTTP API with the in-process scheduler

    \b
    Quick Start:
      outbox-service db upgrade          # Apply migrations
      outbox-service outbox stats        # Backlog by status
      outbox-service outbox dispatch     # Run one dispatch pass now
      outbox-service outbox run          # Standalone dispatch worker
    """
    ctx.ensure_object(dict)


cli.add_command(db.db)
cli.add_command(outbox.outbox)
cli.add_command(server.serve)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
