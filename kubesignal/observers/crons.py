# kubesignal/observers/crons.py
# @ai-rules:
# 1. [Constraint]: CronJob informers must sync before Job informers start. Job handlers look owners up in the index.
# 2. [Pattern]: One CronJob + one Job informer per watched namespace (or one pair for all namespaces).
# 3. [Gotcha]: InformerSyncError from start() is fatal for the process. Caller decides how to exit.
"""Wires CronJob/Job informers to the MonitorIndex and the check-in state machine."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Sequence

from ..config import NAMESPACE_ALL
from ..models import InformerStatus
from .informer import Informer

if TYPE_CHECKING:
    from ..checkins import CheckinStateMachine
    from ..cluster import ClusterClient
    from ..state.monitors import MonitorIndex

logger = logging.getLogger(__name__)


def _label(namespace: str) -> str:
    return "*" if namespace == NAMESPACE_ALL else namespace


class CronObserver:
    """Owns the informers that drive cron check-ins."""

    def __init__(
        self,
        cluster: "ClusterClient",
        index: "MonitorIndex",
        checkins: "CheckinStateMachine",
        namespaces: Sequence[str],
        resync_period: float = 300.0,
        sync_timeout: float = 60.0,
        retry_delay: float = 1.0,
        watch_timeout: int = 300,
    ) -> None:
        self.cluster = cluster
        self.index = index
        self.checkins = checkins
        self.namespaces = list(namespaces)
        self.resync_period = resync_period
        self.sync_timeout = sync_timeout
        self.retry_delay = retry_delay
        self.watch_timeout = watch_timeout

        self.cronjob_informers: list[Informer] = []
        self.job_informers: list[Informer] = []

    def _informer(self, name: str, source: tuple) -> Informer:
        func, args = source
        return Informer(
            name=name,
            list_func=func,
            list_args=args,
            resync_period=self.resync_period,
            retry_delay=self.retry_delay,
            watch_timeout=self.watch_timeout,
        )

    async def _on_cronjob_updated(self, old: Any, new: Any) -> None:
        if old.metadata.resource_version == new.metadata.resource_version:
            return
        await self.index.on_cronjob_updated(new)

    async def start(self) -> None:
        """Start CronJob informers, wait for sync, then start Job informers and wait again."""
        for namespace in self.namespaces:
            informer = self._informer(
                f"cronjobs[{_label(namespace)}]",
                self.cluster.cronjobs_source(namespace),
            )
            informer.add_handler(
                on_add=self.index.on_cronjob_added,
                on_update=self._on_cronjob_updated,
                on_delete=self.index.on_cronjob_deleted,
            )
            self.cronjob_informers.append(informer)

        for informer in self.cronjob_informers:
            await informer.start()
        await asyncio.gather(*(i.wait_for_sync(self.sync_timeout) for i in self.cronjob_informers))
        logger.info(f"CronJob informers synced, {len(self.index)} monitors registered")

        for namespace in self.namespaces:
            informer = self._informer(
                f"jobs[{_label(namespace)}]",
                self.cluster.jobs_source(namespace),
            )
            informer.add_handler(
                on_add=self.checkins.on_job_added,
                on_update=self.checkins.on_job_updated,
                on_delete=self.checkins.on_job_deleted,
            )
            self.job_informers.append(informer)

        for informer in self.job_informers:
            await informer.start()
        await asyncio.gather(*(i.wait_for_sync(self.sync_timeout) for i in self.job_informers))
        logger.info("Job informers synced, cron monitoring active")

    async def stop(self) -> None:
        for informer in self.job_informers + self.cronjob_informers:
            await informer.stop()

    def statuses(self) -> list[InformerStatus]:
        return [i.status() for i in self.cronjob_informers + self.job_informers]
