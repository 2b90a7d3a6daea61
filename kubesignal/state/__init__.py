# kubesignal/state/__init__.py
"""In-memory state shared by the observers."""
from .event_buffer import EventBufferEntry, RecentEventBuffer
from .monitors import MonitorIndex, MonitorRecord, RunRecord

__all__ = ["EventBufferEntry", "MonitorIndex", "MonitorRecord", "RecentEventBuffer", "RunRecord"]
