# kubesignal/enhancers/pod.py
"""Pod context: node, metadata, buffered pod events and the fingerprint seed."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..cluster import clean_metadata
from ..integrations.gke import GKE_CONTEXT
from ..models import Breadcrumb, Level

if TYPE_CHECKING:
    from .pipeline import EnhancerContext

logger = logging.getLogger(__name__)


async def enhance_pod(ctx: "EnhancerContext") -> None:
    if ctx.kind != "Pod" or ctx.obj is None:
        return

    pod = ctx.obj
    alert = ctx.alert
    pod_name = pod.metadata.name

    alert.set_tag_if_not_empty("node_name", pod.spec.node_name if pod.spec else None)
    alert.extras["Pod Metadata"] = clean_metadata(pod.metadata)
    # Duplicated by "Pod Metadata"
    alert.extras.pop("Involved Object", None)

    for entry in ctx.buffer.filter(ctx.namespace, "Pod", pod_name):
        alert.add_breadcrumb(Breadcrumb(
            message=entry.message,
            level=Level.WARNING if entry.type == "Warning" else Level.INFO,
            timestamp=entry.timestamp,
            category="kubernetes.event",
        ))

    alert.message = f"{pod_name}: {ctx.original_message}"
    alert.seed_fingerprint(ctx.original_message)

    if ctx.gke is not None:
        link = ctx.gke.pod_logs_link(pod_name, ctx.namespace)
        if link:
            alert.contexts.setdefault(GKE_CONTEXT, {})["Pod logs"] = link
