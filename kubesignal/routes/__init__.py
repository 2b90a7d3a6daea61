# kubesignal/routes/__init__.py
"""API routes for kubesignal."""
from .health import router as health_router
from .monitors import router as monitors_router

__all__ = [
    "health_router",
    "monitors_router",
]
