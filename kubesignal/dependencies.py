# kubesignal/dependencies.py
"""FastAPI dependency injection for kubesignal."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .observers.crons import CronObserver
    from .observers.events import EventWatcher
    from .state.monitors import MonitorIndex

# Global instances (initialized in main.py lifespan)
_watchers: Optional[list["EventWatcher"]] = None
_monitor_index: Optional["MonitorIndex"] = None
_cron_observer: Optional["CronObserver"] = None


def set_watchers(watchers: list["EventWatcher"]) -> None:
    """Set the running event watchers (one per namespace)."""
    global _watchers
    _watchers = watchers


def set_monitor_index(index: "MonitorIndex") -> None:
    """Set the global MonitorIndex instance."""
    global _monitor_index
    _monitor_index = index


def set_cron_observer(observer: Optional["CronObserver"]) -> None:
    """Set the CronObserver (None when cron monitoring is disabled)."""
    global _cron_observer
    _cron_observer = observer


def reset() -> None:
    """Forget every instance. Called on shutdown."""
    global _watchers, _monitor_index, _cron_observer
    _watchers = None
    _monitor_index = None
    _cron_observer = None


def is_ready() -> bool:
    return _watchers is not None


async def get_watchers() -> list["EventWatcher"]:
    """
    Get the running event watchers.

    FastAPI dependency.
    """
    if _watchers is None:
        raise RuntimeError("Event watchers not initialized. Check startup sequence.")
    return _watchers


async def get_monitor_index() -> "MonitorIndex":
    """Get the MonitorIndex instance."""
    if _monitor_index is None:
        raise RuntimeError("MonitorIndex not initialized. Check startup sequence.")
    return _monitor_index


async def get_cron_observer() -> Optional["CronObserver"]:
    """Get the CronObserver, or None if cron monitoring is disabled."""
    return _cron_observer
