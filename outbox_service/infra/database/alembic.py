"""Programmatic Alembic command interface.

Runs Alembic commands in a worker thread so they can be awaited from the CLI
without blocking (``env.py`` starts its own event loop for the async engine).

Example:
    commands = get_alembic_commands()
    output = await commands.upgrade("head")
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config

from outbox_service.infra.database.session import get_engine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


@dataclass
class AlembicCommandConfig:
    """Configuration for Alembic commands.

    Attributes:
        engine: SQLAlchemy async engine the migrations run against
        script_location: Path to the alembic scripts directory
        ini_path: Path to alembic.ini
    """

    engine: AsyncEngine
    script_location: str = str(PROJECT_ROOT / "alembic")
    ini_path: Path = PROJECT_ROOT / "alembic.ini"

    def get_alembic_config(self, output_buffer: io.StringIO | None = None) -> Config:
        if not self.ini_path.exists():
            raise FileNotFoundError(f"alembic.ini not found at {self.ini_path}")

        config = Config(str(self.ini_path), stdout=output_buffer or io.StringIO())
        config.set_main_option("script_location", self.script_location)
        # render_as_string keeps the password (str() masks it); configparser treats % as interpolation
        url = self.engine.url.render_as_string(hide_password=False)
        config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
        config.attributes["engine_url"] = self.engine.url
        return config


class AlembicCommands:
    """Awaitable wrappers around ``alembic.command``."""

    def __init__(self, config: AlembicCommandConfig) -> None:
        self.config = config

    async def _run(self, func_name: str, *args: object, **kwargs: object) -> str:
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)
        func = getattr(command, func_name)
        await asyncio.to_thread(func, alembic_config, *args, **kwargs)
        return output.getvalue()

    async def upgrade(self, revision: str = "head", *, sql: bool = False) -> str:
        logger.info("Upgrading database", extra={"revision": revision})
        result = await self._run("upgrade", revision, sql=sql)
        logger.info("Upgrade completed", extra={"revision": revision})
        return result

    async def downgrade(self, revision: str = "-1", *, sql: bool = False) -> str:
        logger.warning("Downgrading database", extra={"revision": revision})
        return await self._run("downgrade", revision, sql=sql)

    async def current(self, *, verbose: bool = False) -> str:
        return await self._run("current", verbose=verbose)

    async def history(self, *, verbose: bool = False) -> str:
        return await self._run("history", verbose=verbose, indicate_current=True)


def get_alembic_commands() -> AlembicCommands:
    """AlembicCommands bound to the application engine."""
    return AlembicCommands(AlembicCommandConfig(engine=get_engine()))


__all__ = ["AlembicCommandConfig", "AlembicCommands", "get_alembic_commands"]
