"""Outbox operations API.

- ``GET /outbox/stats``: backlog counts and breaker state
- ``GET /outbox/dead-letters``: latest dead letters, read only
- ``POST /outbox/dispatch``: run one dispatch pass now
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.core.dependencies import get_db_session
from outbox_service.features.outbox.schemas import (
    DeadLetterListResponse,
    DeadLetterResponse,
    DispatchReportResponse,
    OutboxStatsResponse,
)
from outbox_service.infra.outbox.models import OutboxStatus
from outbox_service.infra.outbox.repository import OutboxRepository
from outbox_service.infra.outbox.runtime import OutboxRuntime, get_outbox_runtime

router = APIRouter(prefix="/outbox", tags=["outbox"])


def get_runtime(request: Request) -> OutboxRuntime:
    runtime = getattr(request.app.state, "outbox_runtime", None)
    return runtime if runtime is not None else get_outbox_runtime()


RuntimeDep = Annotated[OutboxRuntime, Depends(get_runtime)]
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/stats", response_model=OutboxStatsResponse, summary="Outbox backlog counts")
async def outbox_stats(session: SessionDep, runtime: RuntimeDep) -> OutboxStatsResponse:
    repository = OutboxRepository()
    counts = await repository.count_by_status(session)
    dead_letters = await repository.count_dead_letters(session)
    return OutboxStatsResponse(
        pending=counts[OutboxStatus.PENDING.value],
        processing=counts[OutboxStatus.PROCESSING.value],
        completed=counts[OutboxStatus.COMPLETED.value],
        failed=counts[OutboxStatus.FAILED.value],
        dead_letters=dead_letters,
        circuit_breakers=runtime.breakers.get_metrics(),
    )


@router.get(
    "/dead-letters",
    response_model=DeadLetterListResponse,
    summary="List dead letters",
    description="Most recent first. Dead letters are never modified through the API.",
)
async def list_dead_letters(
    session: SessionDep,
    limit: int = Query(default=50, ge=1, le=500),
    destination: str | None = Query(default=None, max_length=255),
) -> DeadLetterListResponse:
    repository = OutboxRepository()
    entries = await repository.list_dead_letters(
        session, limit=limit, destination_name=destination
    )
    total = await repository.count_dead_letters(session)
    return DeadLetterListResponse(
        items=[DeadLetterResponse.model_validate(entry) for entry in entries],
        total=total,
    )


@router.post(
    "/dispatch",
    response_model=DispatchReportResponse,
    summary="Run one dispatch pass",
)
async def dispatch_now(runtime: RuntimeDep) -> DispatchReportResponse:
    report = await runtime.dispatcher.dispatch_pending()
    return DispatchReportResponse(**report.as_dict())
