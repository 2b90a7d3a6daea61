# kubesignal/state/event_buffer.py
"""
Recent-event ring buffer.

Owned by a single namespace watch loop; no cross-loop locking. Entries are
evicted oldest-first by capacity and by age.
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class EventBufferEntry:
    """A recently observed raw cluster event, reduced to what breadcrumbs need."""

    namespace: str
    kind: str
    name: str
    message: str
    type: str
    reason: str = ""
    timestamp: Optional[datetime] = None
    observed_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_event(cls, event: Any, timestamp: Optional[datetime] = None) -> "EventBufferEntry":
        obj = event.involved_object
        return cls(
            namespace=obj.namespace or event.metadata.namespace or "",
            kind=obj.kind or "",
            name=obj.name or "",
            message=event.message or "",
            type=event.type or "",
            reason=event.reason or "",
            timestamp=timestamp,
        )


class RecentEventBuffer:
    """Bounded buffer of recent events keyed by involved-object identity."""

    def __init__(self, capacity: int = 1000, max_age: Optional[float] = 3600.0) -> None:
        self.max_age = max_age
        self._entries: deque[EventBufferEntry] = deque(maxlen=capacity)

    def add(self, entry: EventBufferEntry) -> None:
        self._evict_expired()
        self._entries.append(entry)

    def filter(self, namespace: str, kind: str, name: str) -> list[EventBufferEntry]:
        """Entries for one object, oldest first."""
        self._evict_expired()
        return [
            e for e in self._entries
            if e.namespace == namespace and e.kind == kind and e.name == name
        ]

    def _evict_expired(self) -> None:
        if not self.max_age:
            return
        horizon = time.monotonic() - self.max_age
        while self._entries and self._entries[0].observed_at < horizon:
            self._entries.popleft()

    def __len__(self) -> int:
        return len(self._entries)
