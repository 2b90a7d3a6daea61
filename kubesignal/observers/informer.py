# kubesignal/observers/informer.py
# @ai-rules:
# 1. [Pattern]: One reflector task (list + watch) feeds one asyncio.Queue drained by ONE worker task. Handlers see notifications strictly in order.
# 2. [Constraint]: has_synced flips only after the initial list has been dispatched, not merely fetched.
# 3. [Gotcha]: kubernetes.watch.Watch.stream() inspects the list function's docstring. Pass the bound method + args, never a functools.partial.
# 4. [Pattern]: 410 Gone or any stream error -> relist after retry_delay. Relist diffs against the local store (add/update/delete).
"""
List/watch informer for a single collection.

The Python kubernetes client has no shared informers, so this provides the
subset we need: a local store, ordered add/update/delete notifications,
periodic resync and a synced signal for startup.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from ..models import InformerStatus

logger = logging.getLogger(__name__)

AddHandler = Callable[[Any], Awaitable[Any]]
UpdateHandler = Callable[[Any, Any], Awaitable[Any]]
DeleteHandler = Callable[[Any], Awaitable[Any]]

_STREAM_END = object()
_SYNCED = "synced"


class InformerSyncError(RuntimeError):
    """Raised when an informer does not complete its initial sync in time."""


def object_key(obj: Any) -> str:
    meta = obj.metadata
    return f"{meta.namespace or ''}/{meta.name}"


class Informer:
    """Keeps a local copy of a collection and notifies handlers of changes."""

    def __init__(
        self,
        name: str,
        list_func: Callable[..., Any],
        list_args: tuple = (),
        resync_period: float = 0.0,
        retry_delay: float = 1.0,
        watch_timeout: int = 300,
    ) -> None:
        self.name = name
        self.list_func = list_func
        self.list_args = list_args
        self.resync_period = resync_period
        self.retry_delay = retry_delay
        self.watch_timeout = watch_timeout

        self._store: dict[str, Any] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._handlers: list[tuple[Optional[AddHandler], Optional[UpdateHandler], Optional[DeleteHandler]]] = []
        self._resource_version: Optional[str] = None
        self._synced = asyncio.Event()
        self._synced_marker_sent = False
        self._watch: Optional[watch.Watch] = None
        self._tasks: list[asyncio.Task] = []
        self._running = False

    def add_handler(
        self,
        on_add: Optional[AddHandler] = None,
        on_update: Optional[UpdateHandler] = None,
        on_delete: Optional[DeleteHandler] = None,
    ) -> None:
        self._handlers.append((on_add, on_update, on_delete))

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    def status(self) -> InformerStatus:
        return InformerStatus(name=self.name, synced=self.has_synced, items=len(self._store))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning(f"Informer {self.name} already running")
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._dispatch_loop(), name=f"{self.name}-dispatch"),
            asyncio.create_task(self._reflect_loop(), name=f"{self.name}-reflector"),
        ]
        if self.resync_period > 0:
            self._tasks.append(asyncio.create_task(self._resync_loop(), name=f"{self.name}-resync"))
        logger.info(f"Informer {self.name} started")

    async def wait_for_sync(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._synced.wait(), timeout)
        except asyncio.TimeoutError as e:
            raise InformerSyncError(f"{self.name} informer failed to sync within {timeout}s") from e

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._watch is not None:
            self._watch.stop()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info(f"Informer {self.name} stopped")

    # -------------------------------------------------------------------------
    # Reflector: list + watch into the local store
    # -------------------------------------------------------------------------

    async def _reflect_loop(self) -> None:
        while self._running:
            try:
                await self._relist()
                while self._running:
                    await self._watch_once()
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"Informer {self.name}: resource version expired, relisting")
                else:
                    logger.error(f"Informer {self.name} watch failed: {e.status} {e.reason}")
            except Exception as e:
                logger.error(f"Informer {self.name} watch failed: {e}")
            self._resource_version = None
            await asyncio.sleep(self.retry_delay)

    async def _relist(self) -> None:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, lambda: self.list_func(*self.list_args))

        seen: set[str] = set()
        for item in result.items or []:
            key = object_key(item)
            seen.add(key)
            old = self._store.get(key)
            self._store[key] = item
            if old is None:
                self._enqueue("add", None, item)
            else:
                self._enqueue("update", old, item)

        for key in [k for k in self._store if k not in seen]:
            self._enqueue("delete", self._store.pop(key), None)

        if not self._synced_marker_sent:
            self._enqueue(_SYNCED, None, None)
            self._synced_marker_sent = True

        self._resource_version = result.metadata.resource_version
        logger.debug(f"Informer {self.name}: listed {len(seen)} objects at rv={self._resource_version}")

    async def _watch_once(self) -> None:
        """Consume one watch connection. Returns when the server closes it."""
        loop = asyncio.get_running_loop()
        self._watch = watch.Watch()
        stream = self._watch.stream(
            self.list_func,
            *self.list_args,
            resource_version=self._resource_version,
            timeout_seconds=self.watch_timeout,
            allow_watch_bookmarks=True,
        )
        while self._running:
            event = await loop.run_in_executor(None, next, stream, _STREAM_END)
            if event is _STREAM_END:
                break
            self.apply_event(event)
        if self._watch.resource_version:
            self._resource_version = self._watch.resource_version

    def apply_event(self, event: dict) -> None:
        """Apply one watch notification to the store and enqueue handlers."""
        event_type = event.get("type")
        obj = event.get("object")

        if event_type == "BOOKMARK":
            raw = event.get("raw_object") or {}
            self._resource_version = raw.get("metadata", {}).get("resourceVersion") or self._resource_version
            return
        if event_type not in ("ADDED", "MODIFIED", "DELETED") or obj is None:
            logger.debug(f"Informer {self.name}: ignoring notification of type {event_type}")
            return

        key = object_key(obj)
        if event_type == "DELETED":
            self._store.pop(key, None)
            self._enqueue("delete", obj, None)
        else:
            old = self._store.get(key)
            self._store[key] = obj
            if old is None:
                self._enqueue("add", None, obj)
            else:
                self._enqueue("update", old, obj)

        self._resource_version = obj.metadata.resource_version or self._resource_version

    async def _resync_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.resync_period)
            for obj in list(self._store.values()):
                self._enqueue("update", obj, obj)

    # -------------------------------------------------------------------------
    # Dispatch: single worker, strictly ordered
    # -------------------------------------------------------------------------

    def _enqueue(self, action: str, old: Any, new: Any) -> None:
        self._queue.put_nowait((action, old, new))

    async def _dispatch_loop(self) -> None:
        while True:
            action, old, new = await self._queue.get()
            try:
                await self._dispatch(action, old, new)
            except Exception as e:
                logger.error(f"Informer {self.name}: {action} handler failed: {e}")
            finally:
                self._queue.task_done()

    async def _dispatch(self, action: str, old: Any, new: Any) -> None:
        if action == _SYNCED:
            self._synced.set()
            logger.info(f"Informer {self.name} synced ({len(self._store)} objects)")
            return
        for on_add, on_update, on_delete in self._handlers:
            if action == "add" and on_add:
                await on_add(new)
            elif action == "update" and on_update:
                await on_update(old, new)
            elif action == "delete" and on_delete:
                await on_delete(old)

    async def drain(self) -> None:
        """Wait until every queued notification has been handled."""
        await self._queue.join()
