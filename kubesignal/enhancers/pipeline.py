# kubesignal/enhancers/pipeline.py
# @ai-rules:
# 1. [Pattern]: Steps run in DEFAULT_STEPS order: pod context -> cronjob attribution -> owner fallback.
# 2. [Constraint]: A step that finds nothing applicable returns silently. A step that raises is logged and skipped; the alert still ships.
# 3. [Gotcha]: The involved object is fetched once here and shared via EnhancerContext.obj. Steps must not refetch it.
"""Ordered enhancer chain applied to every outgoing alert."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Sequence

from ..models import Alert
from ..state.event_buffer import RecentEventBuffer
from .cronjob import enhance_cronjob, enhance_owner_fallback
from .pod import enhance_pod

if TYPE_CHECKING:
    from ..cluster import ClusterClient
    from ..integrations.gke import GkeMetadata
    from ..ownership import OwnershipResolver

logger = logging.getLogger(__name__)


@dataclass
class EnhancerContext:
    """Everything a step may read or mutate for one alert."""

    alert: Alert
    event: Any
    buffer: RecentEventBuffer
    resolver: "OwnershipResolver"
    obj: Any = None
    gke: Optional["GkeMetadata"] = None
    attributed: bool = False

    @property
    def kind(self) -> str:
        return self.event.involved_object.kind or ""

    @property
    def name(self) -> str:
        return self.event.involved_object.name or ""

    @property
    def namespace(self) -> str:
        return self.event.involved_object.namespace or self.event.metadata.namespace or ""

    @property
    def original_message(self) -> str:
        return self.event.message or ""


Step = Callable[[EnhancerContext], Awaitable[None]]


class EnhancerPipeline:
    """Fetches the involved object once, then runs each step in order."""

    def __init__(
        self,
        cluster: "ClusterClient",
        resolver: "OwnershipResolver",
        gke: Optional["GkeMetadata"] = None,
        steps: Optional[Sequence[Step]] = None,
    ) -> None:
        self.cluster = cluster
        self.resolver = resolver
        self.gke = gke
        self.steps: Sequence[Step] = steps if steps is not None else (
            enhance_pod,
            enhance_cronjob,
            enhance_owner_fallback,
        )

    async def fetch_involved_object(self, kind: str, namespace: str, name: str) -> Any:
        fetchers = {
            "Pod": self.cluster.get_pod,
            "Job": self.cluster.get_job,
            "CronJob": self.cluster.get_cronjob,
        }
        fetch = fetchers.get(kind)
        if fetch is None or not name or not namespace:
            return None
        try:
            return await fetch(namespace, name)
        except Exception as e:
            logger.debug(f"Cannot fetch {kind} {namespace}/{name}: {e}")
            return None

    async def run(self, alert: Alert, event: Any, buffer: RecentEventBuffer) -> EnhancerContext:
        ctx = EnhancerContext(
            alert=alert,
            event=event,
            buffer=buffer,
            resolver=self.resolver,
            gke=self.gke,
        )
        ctx.obj = await self.fetch_involved_object(ctx.kind, ctx.namespace, ctx.name)

        logger.debug(f"Running enhancers for {ctx.kind} {ctx.namespace}/{ctx.name}")
        for step in self.steps:
            try:
                await step(ctx)
            except Exception as e:
                logger.error(f"Enhancer {getattr(step, '__name__', step)} failed for {ctx.kind} {ctx.name}: {e}")
        logger.debug(f"Fingerprint after enhancers: {alert.fingerprint}")
        return ctx
