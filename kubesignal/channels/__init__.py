# kubesignal/channels/__init__.py
"""Outbound channels to the monitoring backend."""
from .backend import HttpBackend, LogBackend, MonitoringBackend, build_backend

__all__ = ["HttpBackend", "LogBackend", "MonitoringBackend", "build_backend"]
