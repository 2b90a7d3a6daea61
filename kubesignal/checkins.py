# kubesignal/checkins.py
# @ai-rules:
# 1. [Constraint]: At most one start and one terminal check-in per Job. Both decisions happen under the MonitorRecord lock.
# 2. [Pattern]: No RunRecord -> no terminal check-in. Never fabricate a close without a recorded start.
# 3. [Gotcha]: Resync delivers update(old, new) with equal resourceVersion. Those are ignored.
# 4. [Pattern]: Runs on the Job informer's single dispatch worker. Owning CronJob comes from the index, not the API.
"""
CronJob check-in state machine.

Per Job run: Unknown -> InProgress -> {Ok, Error}. Start on the first Job
notification with a known owning CronJob; terminal once the Job reports no
active pods, OK when succeeded >= required completions.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .models import CheckIn, CheckInStatus
from .ownership import controller_refs
from .state.monitors import RunRecord

if TYPE_CHECKING:
    from .channels.backend import MonitoringBackend
    from .state.monitors import MonitorIndex, MonitorRecord

logger = logging.getLogger(__name__)


class JobAction(str, Enum):
    """Kind of Job notification fed into the state machine."""
    START = "start"
    TERMINAL_CHECK = "terminal-check"
    TERMINAL_REMOVE = "terminal-remove"


def job_is_finished(job: Any) -> bool:
    """True if the Job controller already marked the Job Complete or Failed."""
    status = job.status
    if status is None:
        return False
    if status.completion_time is not None:
        return True
    for condition in status.conditions or []:
        if condition.type in ("Complete", "Failed") and condition.status == "True":
            return True
    return False


def _count(value: Optional[int]) -> int:
    return value or 0


class CheckinStateMachine:
    """Turns Job add/update/delete notifications into check-ins."""

    def __init__(
        self,
        index: "MonitorIndex",
        backend: "MonitoringBackend",
    ) -> None:
        self.index = index
        self.backend = backend

    # -------------------------------------------------------------------------
    # Informer handlers
    # -------------------------------------------------------------------------

    async def on_job_added(self, job: Any) -> None:
        if job_is_finished(job):
            logger.debug(f"Job {job.metadata.name} already finished when first seen, no run opened")
            return
        await self.handle(job, JobAction.START)

    async def on_job_updated(self, old_job: Any, new_job: Any) -> None:
        if old_job.metadata.resource_version == new_job.metadata.resource_version:
            logger.debug(f"Informer resync for job {new_job.metadata.namespace}/{new_job.metadata.name}")
            return
        await self.handle(new_job, JobAction.TERMINAL_CHECK)

    async def on_job_deleted(self, job: Any) -> None:
        await self.handle(job, JobAction.TERMINAL_REMOVE)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    async def _owning_record(self, job: Any) -> Optional["MonitorRecord"]:
        namespace = job.metadata.namespace
        for ref in controller_refs(job, "CronJob"):
            record = await self.index.get(namespace, ref.name)
            if record is not None:
                return record
            logger.debug(f"Job {job.metadata.name}: CronJob {namespace}/{ref.name} not in index")
        return None

    async def handle(self, job: Any, action: JobAction) -> Optional[CheckInStatus]:
        """Apply *action* for *job*. Returns the status submitted, if any."""
        record = await self._owning_record(job)
        if record is None:
            return None

        if action is JobAction.START:
            return await self._start(record, job)
        return await self._finish(record, job, remove=action is JobAction.TERMINAL_REMOVE)

    async def _start(self, record: "MonitorRecord", job: Any) -> Optional[CheckInStatus]:
        job_name = job.metadata.name
        async with record.lock:
            if record.deleted or job_name in record.runs:
                return None
            logger.info(f"Checking in at start of job {record.namespace}/{job_name} (monitor {record.slug})")
            checkin_id = await self.backend.submit_checkin(
                CheckIn(
                    monitor_slug=record.slug,
                    status=CheckInStatus.IN_PROGRESS,
                    monitor_config=record.config,
                )
            )
            record.runs[job_name] = RunRecord(checkin_id=checkin_id)
        return CheckInStatus.IN_PROGRESS

    async def _finish(self, record: "MonitorRecord", job: Any, remove: bool) -> Optional[CheckInStatus]:
        job_name = job.metadata.name
        status = job.status
        async with record.lock:
            run = record.runs.get(job_name)
            if run is None:
                return None

            if _count(status.active if status else None) > 0:
                if remove:
                    # Deleted mid-run: the backend's max runtime will flag it
                    del record.runs[job_name]
                    logger.warning(f"Job {record.namespace}/{job_name} deleted while still active, run abandoned")
                return None

            succeeded = _count(status.succeeded if status else None)
            required = record.required_completions
            result = CheckInStatus.OK if succeeded >= required else CheckInStatus.ERROR

            logger.info(
                f"Checking in at end of job {record.namespace}/{job_name}: {result.value} "
                f"(succeeded={succeeded}, required={required})"
            )
            await self.backend.submit_checkin(
                CheckIn(
                    check_in_id=run.checkin_id,
                    monitor_slug=record.slug,
                    status=result,
                    duration=round(time.monotonic() - run.started_at, 3),
                    monitor_config=record.config,
                )
            )
            del record.runs[job_name]
        return result
