"""Health check endpoint.

``GET /health`` reports database reachability and whether the outbox
scheduler is running. Only the database decides the status code: a process
running with the scheduler disabled (dispatch driven by the CLI) is healthy.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.core.dependencies import get_db_session
from outbox_service.core.settings import get_app_settings
from outbox_service.features.health.schemas import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable"}},
    summary="Service health",
)
async def health_check(
    request: Request,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> HealthResponse:
    app_settings = get_app_settings()

    try:
        await session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        database_ok = False

    runtime = getattr(request.app.state, "outbox_runtime", None)
    scheduler_ok = bool(runtime is not None and runtime.scheduler.running)

    if not database_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=HealthStatus.HEALTHY if database_ok else HealthStatus.UNHEALTHY,
        timestamp=datetime.now(UTC),
        service=app_settings.service_name,
        version=app_settings.version,
        checks={"database": database_ok, "scheduler": scheduler_ok},
    )
