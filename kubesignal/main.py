# kubesignal/main.py
# @ai-rules:
# 1. [Constraint]: Startup order is fixed: settings -> cluster -> backend -> scope defaults -> integrations -> crons (synced) -> event watchers.
# 2. [Gotcha]: ConfigError, a failed cluster connection and InformerSyncError propagate out of lifespan. The process must not serve in that state.
# 3. [Pattern]: Everything stopped in reverse order on shutdown. Backend closed last so in-flight check-ins can still be sent.
"""
kubesignal - FastAPI Application

Watches cluster Events, Jobs and CronJobs and forwards:
- Enriched Warning events as alerts
- Per-run CronJob check-ins (in_progress / ok / error)
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .channels.backend import build_backend
from .checkins import CheckinStateMachine
from .cluster import ClusterClient
from .config import is_truthy, load_settings
from .dependencies import reset, set_cron_observer, set_monitor_index, set_watchers
from .enhancers.pipeline import EnhancerPipeline
from .integrations import run_integrations
from .models import ScopeDefaults
from .observers.crons import CronObserver
from .observers.events import EPOCH, EventWatcher, utcnow
from .ownership import OwnershipResolver
from .routes import health_router, monitors_router
from .state.event_buffer import RecentEventBuffer
from .state.monitors import MonitorIndex


def log_level(value: Optional[str]) -> int:
    return logging.DEBUG if is_truthy(value) else logging.INFO


# Configure logging
logging.basicConfig(
    level=log_level(os.getenv("DEBUG")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Squelch noisy loggers
for noisy in ("kubernetes.client.rest", "urllib3.connectionpool", "httpx", "httpcore"):
    logging.getLogger(noisy).setLevel(logging.WARNING)


async def build_scope_defaults(cluster: ClusterClient, global_tags: dict[str, str]) -> ScopeDefaults:
    """Global tags plus the Kubernetes context shared by every alert."""
    defaults = ScopeDefaults(tags=dict(global_tags))
    kubernetes_context = {"API endpoint": cluster.host}
    version = await cluster.get_server_version()
    if version:
        kubernetes_context["Server version"] = version
    defaults.contexts["Kubernetes"] = kubernetes_context
    return defaults


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects to the cluster, runs integrations, starts cron informers and
    one event watcher per namespace. Stops everything on shutdown.
    """
    logger.info(f"kubesignal {__version__} starting up...")
    settings = load_settings()
    logger.info(f"Watching namespaces: {settings.namespaces if not settings.watch_all_namespaces else 'all'}")

    cluster = ClusterClient()
    if not await cluster.connect():
        raise RuntimeError("Cannot connect to the Kubernetes API. Check in-cluster or kubeconfig credentials.")
    logger.info(f"Cluster API endpoint: {cluster.host}")

    backend = build_backend(settings.backend_url, settings.backend_token, settings.environment)

    defaults = await build_scope_defaults(cluster, settings.global_tags)
    integration_results = await run_integrations(settings, defaults)

    resolver = OwnershipResolver(cluster)
    pipeline = EnhancerPipeline(cluster, resolver, gke=integration_results.get("gke"))

    index = MonitorIndex(
        max_runtime=settings.crons_max_runtime,
        checkin_margin=settings.crons_checkin_margin,
    )
    set_monitor_index(index)

    cron_observer: Optional[CronObserver] = None
    if settings.crons_enabled:
        cron_observer = CronObserver(
            cluster,
            index,
            CheckinStateMachine(index, backend),
            settings.namespaces,
            resync_period=settings.informer_resync_period,
            sync_timeout=settings.informer_sync_timeout,
            retry_delay=settings.watch_retry_delay,
            watch_timeout=settings.watch_timeout,
        )
        try:
            await cron_observer.start()
        except Exception:
            logger.error("CRITICAL: cron informers failed to sync, aborting startup")
            await cron_observer.stop()
            await backend.close()
            raise
        set_cron_observer(cron_observer)
    else:
        logger.info("Cron monitoring disabled (K8S_CRONS_ENABLED=false)")

    cutoff = EPOCH if settings.watch_historical else utcnow()
    watchers = [
        EventWatcher(
            cluster,
            namespace,
            backend,
            pipeline,
            cutoff=cutoff,
            defaults=defaults,
            buffer=RecentEventBuffer(settings.event_buffer_size, settings.event_buffer_max_age),
            retry_delay=settings.watch_retry_delay,
            watch_timeout=settings.watch_timeout,
        )
        for namespace in settings.namespaces
    ]
    for watcher in watchers:
        await watcher.start()
    set_watchers(watchers)

    logger.info("kubesignal ready")

    yield  # Application runs here

    # Cleanup
    logger.info("kubesignal shutting down...")
    reset()
    for watcher in watchers:
        await watcher.stop()
    if cron_observer:
        await cron_observer.stop()
    await backend.close()
    logger.info("Backend closed")


# Create FastAPI application
app = FastAPI(
    title="kubesignal",
    description="Kubernetes event enrichment and CronJob check-ins",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(monitors_router)


@app.get("/", tags=["info"])
async def root() -> dict:
    """API root - lists the available endpoints."""
    return {
        "service": "kubesignal",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "monitors": {
                "list": "GET /monitors/",
                "get": "GET /monitors/{namespace}/{slug}",
            },
        },
    }


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "kubesignal.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
