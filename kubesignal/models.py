# kubesignal/models.py
# @ai-rules:
# 1. [Constraint]: Wire-facing models are Pydantic BaseModel. Use Field() for defaults and descriptions.
# 2. [Pattern]: Alert is the mutable annotation surface handed to every enhancer. Enhancers mutate it in place.
# 3. [Gotcha]: Alert.fingerprint is append-only once seeded. Never reassign it outside seed_fingerprint().
"""Pydantic schemas for alerts, check-ins and the HTTP surface."""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

# Maximum breadcrumbs kept on a single alert (oldest dropped first)
BREADCRUMB_LIMIT = 20


# =============================================================================
# Alerts
# =============================================================================

class Level(str, Enum):
    """Severity levels understood by the monitoring backend."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class Breadcrumb(BaseModel):
    """A single "what happened before" entry attached to an alert."""
    message: str
    level: Level = Level.INFO
    timestamp: Optional[datetime] = Field(None, description="When the recorded thing happened")
    category: Optional[str] = Field(None, description="Optional grouping, e.g. 'kubernetes.event'")


class ScopeDefaults(BaseModel):
    """
    Process-wide tags and contexts copied onto every alert.

    Filled once at startup (global tags, cluster context, integrations).
    """
    tags: dict[str, str] = Field(default_factory=dict)
    contexts: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def set_tag_if_not_empty(self, key: str, value: Optional[str]) -> None:
        if value:
            self.tags[key] = value


class Alert(BaseModel):
    """An enriched cluster event on its way to the backend."""
    message: str = ""
    level: Level = Level.ERROR
    fingerprint: list[str] = Field(default_factory=list, description="Grouping key, ordered")
    tags: dict[str, str] = Field(default_factory=dict)
    contexts: dict[str, dict[str, Any]] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(default_factory=dict)
    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)
    environment: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_defaults(cls, defaults: Optional[ScopeDefaults], **kwargs: Any) -> "Alert":
        """Build an alert pre-populated with a deep copy of *defaults*."""
        alert = cls(**kwargs)
        if defaults is not None:
            alert.tags.update(defaults.tags)
            alert.contexts.update(copy.deepcopy(defaults.contexts))
        return alert

    def set_tag_if_not_empty(self, key: str, value: Optional[str]) -> None:
        if value:
            self.tags[key] = value

    def add_breadcrumb(self, crumb: Breadcrumb, limit: int = BREADCRUMB_LIMIT) -> None:
        self.breadcrumbs.append(crumb)
        if len(self.breadcrumbs) > limit:
            del self.breadcrumbs[: len(self.breadcrumbs) - limit]

    def seed_fingerprint(self, value: str) -> bool:
        """Set the first fingerprint component. Returns False if already seeded."""
        if self.fingerprint:
            return False
        self.fingerprint.append(value)
        return True

    def extend_fingerprint(self, *parts: str) -> None:
        self.fingerprint.extend(parts)


# =============================================================================
# Check-ins
# =============================================================================

class CheckInStatus(str, Enum):
    """Status of a single cron run heartbeat."""
    IN_PROGRESS = "in_progress"
    OK = "ok"
    ERROR = "error"


class MonitorConfig(BaseModel):
    """Monitor definition sent along with every check-in (upsert semantics)."""
    schedule: str = Field(..., description="Crontab expression, e.g. '0 2 * * *'")
    schedule_type: str = "crontab"
    max_runtime: int = Field(5, ge=1, description="Minutes a run may stay in progress")
    checkin_margin: int = Field(3, ge=0, description="Minutes of grace for a late start")
    timezone: Optional[str] = Field(None, description="IANA timezone of the schedule")


class CheckIn(BaseModel):
    """A start or terminal heartbeat for one monitored run."""
    monitor_slug: str
    status: CheckInStatus
    check_in_id: Optional[str] = Field(None, description="Set to close out a prior in-progress check-in")
    duration: Optional[float] = Field(None, ge=0.0, description="Run duration in seconds (terminal only)")
    monitor_config: Optional[MonitorConfig] = None
    environment: Optional[str] = None


# =============================================================================
# HTTP surface
# =============================================================================

class WatcherStatus(BaseModel):
    """State of one namespace's event watch loop."""
    namespace: str
    connected: bool = False
    resource_version: Optional[str] = None
    cutoff: Optional[datetime] = None
    cursor_updated_at: Optional[datetime] = Field(None, description="Last time the resume position moved or was reset")
    events_forwarded: int = 0
    reconnects: int = 0


class InformerStatus(BaseModel):
    """State of one list/watch subscription."""
    name: str
    synced: bool = False
    items: int = 0


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    watchers: list[WatcherStatus] = Field(default_factory=list)
    informers: list[InformerStatus] = Field(default_factory=list)


class MonitorSummary(BaseModel):
    """Read-only view of a MonitorRecord."""
    namespace: str
    slug: str
    schedule: str
    timezone: Optional[str] = None
    completions: Optional[int] = None
    in_flight: list[str] = Field(default_factory=list, description="Job names with an open check-in")
