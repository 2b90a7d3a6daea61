# kubesignal/observers/events.py
# @ai-rules:
# 1. [Pattern]: One EventWatcher per namespace (or NAMESPACE_ALL). Each owns its WatchCursor and RecentEventBuffer.
# 2. [Constraint]: Only ADDED/MODIFIED notifications past the cutoff are accepted. Only Warning events are forwarded.
# 3. [Pattern]: Accepted events (Normal included) go into the buffer AFTER forwarding, so an alert never lists itself as a breadcrumb.
# 4. [Gotcha]: A clean stream end (server timeout) resumes from the cursor. A failure resets the cursor to "now" -- events in the gap are lost.
"""
Watch-and-enrich loop for cluster Events.

Consumes the Event watch stream of one namespace, filters by type and
cutoff, builds an alert with the event's own context, runs the enhancer
pipeline and hands the alert to the backend.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from kubernetes import watch

from ..cluster import clean_metadata, to_plain
from ..config import NAMESPACE_ALL
from ..models import Alert, Level, ScopeDefaults, WatcherStatus
from ..state.event_buffer import EventBufferEntry, RecentEventBuffer

if TYPE_CHECKING:
    from ..channels.backend import MonitoringBackend
    from ..cluster import ClusterClient
    from ..enhancers.pipeline import EnhancerPipeline

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_STREAM_END = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WatchCursor:
    """Resume position for one namespace's event watch."""

    cutoff: datetime
    resource_version: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    def advance(self, resource_version: Optional[str]) -> None:
        if resource_version:
            self.resource_version = resource_version
            self.updated_at = utcnow()

    def reset(self, now: Optional[datetime] = None) -> None:
        """Forget the resume token and only accept events from *now* on."""
        self.cutoff = now or utcnow()
        self.resource_version = None
        self.updated_at = self.cutoff


def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def event_timestamp(event: Any) -> Optional[datetime]:
    """lastTimestamp, falling back to eventTime."""
    return _aware(event.last_timestamp or event.event_time)


def object_name_tag(kind: Optional[str]) -> str:
    if not kind:
        return "object_name"
    return f"{kind.lower()}_name"


def build_alert(event: Any, defaults: Optional[ScopeDefaults] = None) -> Alert:
    """Alert carrying the raw event's own tags and extras."""
    involved = event.involved_object
    alert = Alert.from_defaults(defaults, message=event.message or "", level=Level.ERROR)

    alert.set_tag_if_not_empty("event_type", event.type)
    alert.set_tag_if_not_empty("reason", event.reason)
    alert.set_tag_if_not_empty("namespace", involved.namespace)
    alert.set_tag_if_not_empty("kind", involved.kind)
    alert.set_tag_if_not_empty("object_uid", involved.uid)
    alert.set_tag_if_not_empty(object_name_tag(involved.kind), involved.name)

    plain = to_plain(event) or {}
    source = plain.pop("source", None)
    if source:
        alert.extras["Event Source"] = source
    alert.extras["Involved Object"] = plain.pop("involvedObject", None)
    plain.pop("metadata", None)
    alert.extras["Event Metadata"] = clean_metadata(event.metadata)
    alert.extras["~ Misc Event Fields"] = plain
    return alert


class EventWatcher:
    """Long-lived, auto-reconnecting event watch for one namespace."""

    def __init__(
        self,
        cluster: "ClusterClient",
        namespace: str,
        backend: "MonitoringBackend",
        pipeline: "EnhancerPipeline",
        cutoff: datetime,
        defaults: Optional[ScopeDefaults] = None,
        buffer: Optional[RecentEventBuffer] = None,
        retry_delay: float = 1.0,
        watch_timeout: int = 300,
    ) -> None:
        self.cluster = cluster
        self.namespace = namespace
        self.backend = backend
        self.pipeline = pipeline
        self.defaults = defaults
        self.buffer = buffer or RecentEventBuffer()
        self.cursor = WatchCursor(cutoff=cutoff)
        self.retry_delay = retry_delay
        self.watch_timeout = watch_timeout

        self.events_forwarded = 0
        self.reconnects = 0
        self._connected = False
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._watch: Optional[watch.Watch] = None

    @property
    def where(self) -> str:
        if self.namespace == NAMESPACE_ALL:
            return "in all namespaces"
        return f"in namespace '{self.namespace}'"

    def status(self) -> WatcherStatus:
        return WatcherStatus(
            namespace=self.namespace or "*",
            connected=self._connected,
            resource_version=self.cursor.resource_version,
            cutoff=self.cursor.cutoff,
            cursor_updated_at=self.cursor.updated_at,
            events_forwarded=self.events_forwarded,
            reconnects=self.reconnects,
        )

    async def start(self) -> None:
        """Start the background watch loop."""
        if self._running:
            logger.warning(f"EventWatcher {self.where} already running")
            return
        self._running = True
        self._task = asyncio.create_task(self.run_forever())
        if self.cursor.cutoff <= EPOCH:
            logger.info(f"Watching all available events {self.where} (no starting timestamp)")
        else:
            logger.info(f"Watching events {self.where} starting from: {self.cursor.cutoff.isoformat()}")

    async def stop(self) -> None:
        """Stop the watch loop gracefully."""
        if not self._running:
            return
        self._running = False
        if self._watch is not None:
            self._watch.stop()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"EventWatcher {self.where} stopped")

    async def run_forever(self) -> None:
        """Main watch loop - runs until stopped."""
        while self._running:
            try:
                await self._watch_once()
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error while watching events {self.where}: {e}")
            finally:
                self._connected = False

            self.cursor.reset()
            self.reconnects += 1
            await asyncio.sleep(self.retry_delay)

    async def _watch_once(self) -> None:
        """Consume one watch connection. Returns normally when the server closes it."""
        loop = asyncio.get_running_loop()
        func, args = self.cluster.events_source(self.namespace)
        self._watch = watch.Watch()
        stream = self._watch.stream(
            func,
            *args,
            resource_version=self.cursor.resource_version,
            timeout_seconds=self.watch_timeout,
            allow_watch_bookmarks=True,
        )
        self._connected = True
        logger.debug(f"Reading from the event stream {self.where} (rv={self.cursor.resource_version})")
        while self._running:
            event = await loop.run_in_executor(None, next, stream, _STREAM_END)
            if event is _STREAM_END:
                break
            await self.handle_watch_event(event)

    async def handle_watch_event(self, event: dict) -> bool:
        """Filter, enrich and forward one notification. Returns True if forwarded."""
        event_type = event.get("type")
        raw = event.get("raw_object") or {}
        if isinstance(raw, dict):
            self.cursor.advance(raw.get("metadata", {}).get("resourceVersion"))

        if event_type not in ("ADDED", "MODIFIED"):
            logger.debug(f"Skipping a watch event of type {event_type}")
            return False

        obj = event.get("object")
        if getattr(obj, "involved_object", None) is None:
            logger.warning(f"Skipping a notification {self.where} that is not an Event: {type(obj).__name__}")
            return False

        ts = event_timestamp(obj)
        if ts is not None and ts < self.cursor.cutoff:
            logger.debug(f"Ignoring an event because it is too old ({ts.isoformat()})")
            return False

        forwarded = False
        if obj.type == "Warning":
            await self.process_event(obj)
            forwarded = True
        else:
            logger.debug(f"Skipping an event of type {obj.type}")

        self.buffer.add(EventBufferEntry.from_event(obj, ts))
        return forwarded

    async def process_event(self, event: Any) -> Alert:
        """Build, enrich and submit the alert for a Warning event."""
        alert = build_alert(event, self.defaults)
        await self.pipeline.run(alert, event, self.buffer)
        await self.backend.submit_alert(alert)
        self.events_forwarded += 1
        return alert
