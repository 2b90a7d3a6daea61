# kubesignal/observers/__init__.py
"""Cluster observers: event watchers and cron informers."""
from .crons import CronObserver
from .events import EventWatcher, WatchCursor, build_alert
from .informer import Informer, InformerSyncError

__all__ = [
    "CronObserver",
    "EventWatcher",
    "Informer",
    "InformerSyncError",
    "WatchCursor",
    "build_alert",
]
