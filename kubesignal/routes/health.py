# kubesignal/routes/health.py
"""Liveness/readiness endpoint."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from .. import dependencies
from ..models import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint for liveness/readiness probes.

    Returns 503 Service Unavailable until every watcher has been started.
    Status is "degraded" while any watcher is between connections or an
    informer has not synced.
    """
    if not dependencies.is_ready():
        raise HTTPException(
            status_code=503,
            detail="Watchers not initialized - startup in progress or failed",
        )

    watchers = await dependencies.get_watchers()
    cron_observer = await dependencies.get_cron_observer()

    watcher_statuses = [w.status() for w in watchers]
    informer_statuses = cron_observer.statuses() if cron_observer else []
    healthy = all(w.connected for w in watcher_statuses) and all(i.synced for i in informer_statuses)
    return HealthResponse(
        status="ok" if healthy else "degraded",
        watchers=watcher_statuses,
        informers=informer_statuses,
    )
