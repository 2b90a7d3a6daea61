# kubesignal/cluster.py
# @ai-rules:
# 1. [Constraint]: This module is the only place that constructs kubernetes API clients.
# 2. [Pattern]: Every blocking client call goes through _call() -> run_in_executor. Never block the event loop.
# 3. [Gotcha]: NAMESPACE_ALL ("") selects the *_for_all_namespaces list functions; get-by-name always needs a namespace.
"""
Kubernetes API access.

Thin async facade over the synchronous kubernetes client: config loading,
get-by-name for Pods/Jobs/CronJobs, list function selection for
informers and watches, and JSON-friendly serialization of API objects.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from kubernetes import client, config

from .config import NAMESPACE_ALL

logger = logging.getLogger(__name__)

_serializer: Optional[client.ApiClient] = None


def to_plain(obj: Any) -> Any:
    """Convert a kubernetes model (or nested structure) to JSON-friendly dicts."""
    global _serializer
    if obj is None:
        return None
    if _serializer is None:
        _serializer = client.ApiClient()
    return _serializer.sanitize_for_serialization(obj)


def clean_metadata(metadata: Any) -> dict:
    """Serialize ObjectMeta without managedFields (noise for humans)."""
    plain = to_plain(metadata) or {}
    plain.pop("managedFields", None)
    return plain


class ClusterClient:
    """
    Async wrapper around CoreV1Api / BatchV1Api.

    Usage:
        cluster = ClusterClient()
        if await cluster.connect():
            pod = await cluster.get_pod("default", "web-0")
    """

    def __init__(
        self,
        core_api: Optional[client.CoreV1Api] = None,
        batch_api: Optional[client.BatchV1Api] = None,
        version_api: Optional[client.VersionApi] = None,
    ):
        self.core_api = core_api
        self.batch_api = batch_api
        self.version_api = version_api
        self.host: str = ""

    async def connect(self) -> bool:
        """
        Load cluster credentials and build API clients.

        Tries in-cluster config first (when running in a pod), then
        kubeconfig. Returns True if successful, False otherwise.
        """
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        except config.ConfigException:
            try:
                config.load_kube_config()
                logger.info("Loaded kubeconfig")
            except config.ConfigException as e:
                logger.error(f"No Kubernetes config available: {e}")
                return False

        self.core_api = client.CoreV1Api()
        self.batch_api = client.BatchV1Api()
        self.version_api = client.VersionApi()
        self.host = client.Configuration.get_default_copy().host
        return True

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def get_pod(self, namespace: str, name: str) -> client.V1Pod:
        return await self._call(self.core_api.read_namespaced_pod, name, namespace)

    async def get_job(self, namespace: str, name: str) -> client.V1Job:
        return await self._call(self.batch_api.read_namespaced_job, name, namespace)

    async def get_cronjob(self, namespace: str, name: str) -> client.V1CronJob:
        return await self._call(self.batch_api.read_namespaced_cron_job, name, namespace)

    async def get_server_version(self) -> Optional[str]:
        """Cluster version string (e.g. v1.29.2), or None if unavailable."""
        try:
            info = await self._call(self.version_api.get_code)
            return info.git_version
        except Exception as e:
            logger.error(f"Error while getting cluster version: {e}")
            return None

    # -------------------------------------------------------------------------
    # List functions (also used as watch sources by kubernetes.watch.Watch)
    # -------------------------------------------------------------------------

    def events_source(self, namespace: str) -> tuple[Callable[..., Any], tuple]:
        if namespace == NAMESPACE_ALL:
            return self.core_api.list_event_for_all_namespaces, ()
        return self.core_api.list_namespaced_event, (namespace,)

    def jobs_source(self, namespace: str) -> tuple[Callable[..., Any], tuple]:
        if namespace == NAMESPACE_ALL:
            return self.batch_api.list_job_for_all_namespaces, ()
        return self.batch_api.list_namespaced_job, (namespace,)

    def cronjobs_source(self, namespace: str) -> tuple[Callable[..., Any], tuple]:
        if namespace == NAMESPACE_ALL:
            return self.batch_api.list_cron_job_for_all_namespaces, ()
        return self.batch_api.list_namespaced_cron_job, (namespace,)
