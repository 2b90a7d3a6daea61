# kubesignal/integrations/gke.py
# @ai-rules:
# 1. [Pattern]: Metadata server accepts both kebab-case and camelCase keys. _pick() tries each in order.
# 2. [Constraint]: Links are built only from resolved project/location/cluster. Any missing field -> no link.
# 3. [Pattern]: All HTTP goes through httpx.AsyncClient with the Metadata-Flavor header.
"""Google Kubernetes Engine integration: cluster identity from the metadata server."""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ..models import ScopeDefaults

logger = logging.getLogger(__name__)

INSTANCE_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/instance/attributes/?recursive=true"
PROJECT_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/project/?recursive=true"
METADATA_TIMEOUT = 5.0
GKE_CONTEXT = "Google Kubernetes Engine"


class GkeMetadata(BaseModel):
    """Resolved GKE cluster identity."""
    cluster_name: Optional[str] = None
    cluster_location: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def cluster_url(self) -> Optional[str]:
        if not (self.cluster_location and self.cluster_name and self.project_id):
            return None
        return (
            "https://console.cloud.google.com/kubernetes/clusters/details/"
            f"{self.cluster_location}/{self.cluster_name}/details?project={self.project_id}"
        )

    def pod_logs_link(self, pod_name: str, namespace: str) -> Optional[str]:
        """Cloud Logging query for one pod's container logs over the last hour."""
        if not (self.project_id and self.cluster_location and self.cluster_name):
            return None
        query = "\n".join([
            'resource.type="k8s_container"',
            f'resource.labels.project_id="{self.project_id}"',
            f'resource.labels.location="{self.cluster_location}"',
            f'resource.labels.cluster_name="{self.cluster_name}"',
            f'resource.labels.namespace_name="{namespace}"',
            f'resource.labels.pod_name="{pod_name}"',
        ]) + "\n"
        return (
            "https://console.cloud.google.com/logs/query;query="
            f"{quote(query, safe='')};duration=PT1H?project={self.project_id}"
        )

    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {
            "Cluster name": self.cluster_name,
            "Cluster location": self.cluster_location,
            "GCP project": self.project_id,
        }
        if self.cluster_url:
            ctx["Cluster URL"] = self.cluster_url
        return ctx


def _pick(data: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


async def read_google_metadata(client: httpx.AsyncClient, url: str) -> dict:
    resp = await client.get(url, headers={"Metadata-Flavor": "Google"})
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError(f"unexpected metadata payload from {url}")
    return data


async def fetch_gke_metadata(timeout: float = METADATA_TIMEOUT) -> GkeMetadata:
    async with httpx.AsyncClient(timeout=timeout) as client:
        instance = await read_google_metadata(client, INSTANCE_METADATA_URL)
        project = await read_google_metadata(client, PROJECT_METADATA_URL)
    return GkeMetadata(
        cluster_name=_pick(instance, "cluster-name", "clusterName"),
        cluster_location=_pick(instance, "cluster-location", "clusterLocation"),
        project_id=_pick(project, "project-id", "projectId"),
    )


async def apply_gke(defaults: ScopeDefaults) -> Optional[GkeMetadata]:
    """Tag every alert with GKE identity. Returns None (and changes nothing) on failure."""
    logger.info("Running GKE integration")
    try:
        metadata = await fetch_gke_metadata()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error running GKE integration: {e}")
        return None

    defaults.set_tag_if_not_empty("gke_cluster_name", metadata.cluster_name)
    defaults.set_tag_if_not_empty("gke_cluster_location", metadata.cluster_location)
    defaults.set_tag_if_not_empty("gke_project_name", metadata.project_id)
    defaults.contexts[GKE_CONTEXT] = metadata.context()
    logger.info(f"GKE context discovered: {defaults.contexts[GKE_CONTEXT]}")
    return metadata
