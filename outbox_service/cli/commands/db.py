"""Database management commands.

Example:bash
    # Verify connectivity
    outbox-service db init

    # Apply all pending migrations
    outbox-service db upgrade

    # Create the outbox tables without migrations (local SQLite runs)
    outbox-service db create-tables
"""

import sys

import click

from outbox_service.cli.utils import coro, error, info, success, warning
from outbox_service.core.settings import get_db_settings
from outbox_service.infra.database import close_database, ensure_tables, init_database


def get_alembic_commands():
    """Lazy import keeps alembic out of the import path of other commands."""
    from outbox_service.infra.database.alembic import get_alembic_commands

    return get_alembic_commands()


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def init() -> None:
    """Verify database connectivity."""
    db_settings = get_db_settings()
    info("Connecting to database...")
    try:
        await init_database(create_tables=False)
        success("Database connected successfully!")
        if db_settings.is_sqlite:
            info("Using SQLite; run 'outbox-service db create-tables' to bootstrap the schema")
    except Exception as e:
        error(f"Failed to connect to database: {e}")
        sys.exit(1)
    finally:
        await close_database()


@db.command(name="create-tables")
@coro
async def create_tables() -> None:
    """Create the outbox and dead letter tables if they are missing."""
    try:
        await ensure_tables()
        success("Outbox tables are in place")
    except Exception as e:
        error(f"Failed to create tables: {e}")
        sys.exit(1)
    finally:
        await close_database()


@db.command()
@click.option(
    "--revision",
    default="head",
    help="Target revision (default: head)",
)
@click.option(
    "--sql/--no-sql",
    default=False,
    help="Output SQL without executing",
)
@coro
async def upgrade(revision: str, sql: bool) -> None:
    """Apply database migrations."""
    info(f"Upgrading database to: {revision}")

    try:
        commands = get_alembic_commands()
        output = await commands.upgrade(revision, sql=sql)

        if output:
            click.echo(output)

        if not sql:
            success("Database upgraded successfully!")

    except Exception as e:
        error(f"Failed to upgrade database: {e}")
        sys.exit(1)
    finally:
        await close_database()


@db.command()
@click.option(
    "--steps",
    default=1,
    type=int,
    help="Number of migrations to rollback",
)
@click.option(
    "--yes",
    is_flag=True,
    help="Skip the confirmation prompt",
)
@coro
async def downgrade(steps: int, yes: bool) -> None:
    """Rollback database migrations."""
    warning(f"Rolling back {steps} migration(s)...")
    if not yes and not click.confirm("Are you sure you want to rollback migrations?"):
        info("Rollback cancelled")
        return

    try:
        commands = get_alembic_commands()
        target = f"-{steps}" if steps > 0 else "base"
        output = await commands.downgrade(target)

        if output:
            click.echo(output)
        success("Database downgraded successfully!")

    except Exception as e:
        error(f"Failed to downgrade database: {e}")
        sys.exit(1)
    finally:
        await close_database()


@db.command()
@coro
async def current() -> None:
    """Show current database revision."""
    try:
        commands = get_alembic_commands()
        output = await commands.current(verbose=True)

        if output:
            click.echo(output)
        else:
            info("No migrations applied")

    except Exception as e:
        error(f"Failed to get current revision: {e}")
        sys.exit(1)
    finally:
        await close_database()


@db.command()
@coro
async def history() -> None:
    """Show migration history."""
    info("Migration history:")

    try:
        commands = get_alembic_commands()
        output = await commands.history(verbose=True)

        if output:
            click.echo(output)
        else:
            info("No migrations found")

    except Exception as e:
        error(f"Failed to get migration history: {e}")
        sys.exit(1)
    finally:
        await close_database()
