# kubesignal/ownership.py
# @ai-rules:
# 1. [Constraint]: Single implementation of Pod -> Job -> CronJob resolution. Enhancers and check-ins must not re-walk owner refs themselves.
# 2. [Pattern]: A failed fetch abandons that branch only. resolve() never raises for cluster errors.
# 3. [Gotcha]: ownerReference.controller may be None. Treat it as False.
"""Ownership chain resolution through the cluster API (no caching)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Optional

if TYPE_CHECKING:
    from .cluster import ClusterClient

logger = logging.getLogger(__name__)


@dataclass
class OwnershipChain:
    """Resolved Pod -> Job -> CronJob relationship. Any link may be missing."""

    pod: Any = None
    job: Any = None
    cronjob: Any = None


def controller_refs(obj: Any, kind: str) -> Iterator[Any]:
    """Yield controller owner references of *obj* with the given *kind*."""
    metadata = getattr(obj, "metadata", None)
    for ref in (getattr(metadata, "owner_references", None) or []):
        if ref.controller and ref.kind == kind:
            yield ref


def first_owner(obj: Any) -> Optional[Any]:
    metadata = getattr(obj, "metadata", None)
    refs = getattr(metadata, "owner_references", None) or []
    return refs[0] if refs else None


class OwnershipResolver:
    """Walks owner references Pod -> Job -> CronJob via get-by-name lookups."""

    def __init__(self, cluster: "ClusterClient"):
        self.cluster = cluster

    async def resolve(self, pod: Any) -> OwnershipChain:
        """
        Resolve the controlling Job and CronJob of *pod*.

        Every controller Job reference is followed; the last CronJob that
        could be fetched wins.
        """
        chain = OwnershipChain(pod=pod)
        namespace = pod.metadata.namespace

        for pod_ref in controller_refs(pod, "Job"):
            try:
                job = await self.cluster.get_job(namespace, pod_ref.name)
            except Exception as e:
                logger.debug(f"Cannot fetch Job {namespace}/{pod_ref.name} owning pod {pod.metadata.name}: {e}")
                continue
            chain.job = job
            cronjob = await self.resolve_job(job)
            if cronjob is not None:
                chain.cronjob = cronjob

        return chain

    async def resolve_job(self, job: Any) -> Optional[Any]:
        """Return the controlling CronJob of *job*, or None."""
        namespace = job.metadata.namespace
        owning_cronjob = None
        for job_ref in controller_refs(job, "CronJob"):
            try:
                owning_cronjob = await self.cluster.get_cronjob(namespace, job_ref.name)
            except Exception as e:
                logger.debug(f"Cannot fetch CronJob {namespace}/{job_ref.name} owning job {job.metadata.name}: {e}")
                continue
        return owning_cronjob
