# kubesignal/state/monitors.py
# @ai-rules:
# 1. [Pattern]: Two lock levels. MonitorIndex._lock guards the record map; MonitorRecord.lock serializes that record's runs.
# 2. [Constraint]: Never hold MonitorIndex._lock while awaiting the backend. Take the record lock instead.
# 3. [Gotcha]: A removed record may still be held by a pending check-in. It is marked deleted under its lock and refuses further runs.
"""
CronJob/Job index.

Process-wide map of MonitorRecords keyed by (namespace, CronJob name),
fed by the CronJob informer and read/mutated by the check-in state
machine running on the Job informer's queue.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..models import MonitorConfig, MonitorSummary

logger = logging.getLogger(__name__)

# Defaults used when a CronJob is registered without explicit overrides (minutes)
DEFAULT_MAX_RUNTIME = 5
DEFAULT_CHECKIN_MARGIN = 3


@dataclass
class RunRecord:
    """One in-flight Job run. Lives between start and terminal heartbeat."""

    checkin_id: str
    started_at: float = field(default_factory=time.monotonic)


@dataclass
class MonitorRecord:
    """Check-in configuration of one CronJob plus its in-flight runs."""

    namespace: str
    slug: str
    config: MonitorConfig
    completions: Optional[int] = None
    runs: dict[str, RunRecord] = field(default_factory=dict)
    deleted: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def required_completions(self) -> int:
        """Succeeded pods needed for an OK run (1 when the CronJob sets none)."""
        return self.completions if self.completions is not None else 1

    def summary(self) -> MonitorSummary:
        return MonitorSummary(
            namespace=self.namespace,
            slug=self.slug,
            schedule=self.config.schedule,
            timezone=self.config.timezone,
            completions=self.completions,
            in_flight=sorted(self.runs),
        )


def monitor_config_from_cronjob(
    cronjob: Any,
    max_runtime: int = DEFAULT_MAX_RUNTIME,
    checkin_margin: int = DEFAULT_CHECKIN_MARGIN,
) -> MonitorConfig:
    spec = cronjob.spec
    return MonitorConfig(
        schedule=spec.schedule,
        max_runtime=max_runtime,
        checkin_margin=checkin_margin,
        timezone=getattr(spec, "time_zone", None),
    )


def completions_from_cronjob(cronjob: Any) -> Optional[int]:
    template = cronjob.spec.job_template
    if template is None or template.spec is None:
        return None
    return template.spec.completions


class MonitorIndex:
    """Registry of MonitorRecords shared by the CronJob and Job informers."""

    def __init__(
        self,
        max_runtime: int = DEFAULT_MAX_RUNTIME,
        checkin_margin: int = DEFAULT_CHECKIN_MARGIN,
    ) -> None:
        self.max_runtime = max_runtime
        self.checkin_margin = checkin_margin
        self._records: dict[tuple[str, str], MonitorRecord] = {}
        self._lock = asyncio.Lock()

    async def on_cronjob_added(self, cronjob: Any) -> MonitorRecord:
        """Create a MonitorRecord for *cronjob*. Idempotent."""
        key = (cronjob.metadata.namespace, cronjob.metadata.name)
        async with self._lock:
            existing = self._records.get(key)
            if existing is not None:
                logger.debug(f"CronJob {key[0]}/{key[1]} already registered")
                return existing
            record = MonitorRecord(
                namespace=key[0],
                slug=key[1],
                config=monitor_config_from_cronjob(cronjob, self.max_runtime, self.checkin_margin),
                completions=completions_from_cronjob(cronjob),
            )
            self._records[key] = record
        logger.info(f"Registered monitor {record.slug} ({key[0]}) schedule='{record.config.schedule}'")
        return record

    async def on_cronjob_updated(self, cronjob: Any) -> MonitorRecord:
        """Refresh schedule/completions in place, keeping in-flight runs."""
        key = (cronjob.metadata.namespace, cronjob.metadata.name)
        async with self._lock:
            record = self._records.get(key)
        if record is None:
            return await self.on_cronjob_added(cronjob)

        config = monitor_config_from_cronjob(cronjob, self.max_runtime, self.checkin_margin)
        completions = completions_from_cronjob(cronjob)
        async with record.lock:
            if config != record.config or completions != record.completions:
                logger.info(f"Monitor {record.slug} ({key[0]}) updated: schedule='{config.schedule}'")
            record.config = config
            record.completions = completions
        return record

    async def on_cronjob_deleted(self, cronjob: Any) -> Optional[MonitorRecord]:
        """Drop the record and all its runs. In-flight check-ins are abandoned."""
        key = (cronjob.metadata.namespace, cronjob.metadata.name)
        async with self._lock:
            record = self._records.pop(key, None)
        if record is None:
            logger.debug(f"CronJob {key[0]}/{key[1]} was not registered")
            return None
        async with record.lock:
            record.deleted = True
            abandoned = sorted(record.runs)
            record.runs.clear()
        if abandoned:
            logger.warning(f"Monitor {record.slug} ({key[0]}) deleted with in-flight runs: {abandoned}")
        else:
            logger.info(f"Monitor {record.slug} ({key[0]}) deleted")
        return record

    async def get(self, namespace: str, name: str) -> Optional[MonitorRecord]:
        async with self._lock:
            return self._records.get((namespace, name))

    async def records(self) -> list[MonitorRecord]:
        async with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)
