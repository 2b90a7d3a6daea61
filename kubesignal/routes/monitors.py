# kubesignal/routes/monitors.py
"""Read-only view of the cron monitors and their in-flight runs."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_monitor_index
from ..models import MonitorSummary
from ..state.monitors import MonitorIndex

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/monitors", tags=["monitors"])


@router.get("/", response_model=List[MonitorSummary])
async def list_monitors(
    namespace: Optional[str] = Query(None, description="Only monitors in this namespace"),
    index: MonitorIndex = Depends(get_monitor_index),
) -> List[MonitorSummary]:
    """List every registered monitor, sorted by namespace then slug."""
    records = await index.records()
    if namespace:
        records = [r for r in records if r.namespace == namespace]
    return sorted((r.summary() for r in records), key=lambda s: (s.namespace, s.slug))


@router.get("/{namespace}/{slug}", response_model=MonitorSummary)
async def get_monitor(
    namespace: str,
    slug: str,
    index: MonitorIndex = Depends(get_monitor_index),
) -> MonitorSummary:
    """Get a single monitor."""
    record = await index.get(namespace, slug)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Monitor {namespace}/{slug} not found")
    return record.summary()
