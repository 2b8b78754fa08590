"""Application lifespan management.

Startup order:
1. Logging
2. Database (connectivity check, optional table bootstrap)
3. Outbox runtime (notifier, breakers, dispatcher) and its scheduler

Shutdown runs in reverse: the scheduler waits for in-flight ticks, then the
notifier's HTTP client and the database engine are closed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from outbox_service.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
)
from outbox_service.infra.database import close_database, init_database
from outbox_service.infra.logging import setup_logging
from outbox_service.infra.outbox.runtime import close_outbox_runtime, get_outbox_runtime

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app_settings = get_app_settings()
    db_settings = get_db_settings()
    outbox_settings = get_outbox_settings()

    setup_logging(get_logging_settings())
    logger.info(
        "Starting application",
        extra={
            "service": app_settings.service_name,
            "version": app_settings.version,
            "environment": app_settings.environment,
        },
    )

    if db_settings.is_configured:
        await init_database()

    runtime = get_outbox_runtime()
    app.state.outbox_runtime = runtime

    if outbox_settings.scheduler_enabled and db_settings.is_configured:
        await runtime.scheduler.start()
    else:
        logger.info(
            "Outbox scheduler not started",
            extra={
                "scheduler_enabled": outbox_settings.scheduler_enabled,
                "database_configured": db_settings.is_configured,
            },
        )

    try:
        yield
    finally:
        logger.info("Shutting down application")
        await close_outbox_runtime()
        app.state.outbox_runtime = None
        await close_database()
        logger.info("Application shutdown complete")
