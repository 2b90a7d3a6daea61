# kubesignal/enhancers/cronjob.py
# @ai-rules:
# 1. [Pattern]: enhance_cronjob sets ctx.attributed. enhance_owner_fallback only runs its logic when nothing attributed the alert.
# 2. [Constraint]: Fingerprint is append-only here. Seed with the message only if no earlier step did.
"""CronJob attribution and the owner/name fallback."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..cluster import clean_metadata
from ..models import Breadcrumb, Level
from ..ownership import first_owner

if TYPE_CHECKING:
    from .pipeline import EnhancerContext

logger = logging.getLogger(__name__)


async def _owning_cronjob(ctx: "EnhancerContext") -> Optional[Any]:
    if ctx.kind == "Pod":
        chain = await ctx.resolver.resolve(ctx.obj)
        return chain.cronjob
    if ctx.kind == "Job":
        return await ctx.resolver.resolve_job(ctx.obj)
    if ctx.kind == "CronJob":
        return ctx.obj
    return None


async def enhance_cronjob(ctx: "EnhancerContext") -> None:
    if ctx.obj is None:
        return
    cronjob = await _owning_cronjob(ctx)
    if cronjob is None:
        return

    alert = ctx.alert
    name = cronjob.metadata.name
    logger.debug(f"Attributing {ctx.kind} {ctx.name} to cronjob {name}")

    alert.seed_fingerprint(ctx.original_message)
    alert.extend_fingerprint(cronjob.kind or "CronJob", name)
    alert.set_tag_if_not_empty("cronjob_name", name)
    alert.add_breadcrumb(Breadcrumb(
        message=f"Created cronjob {name}",
        level=Level.INFO,
        timestamp=cronjob.metadata.creation_timestamp,
    ))
    alert.contexts["Monitor"] = {"Slug": name}
    alert.contexts["Cronjob"] = {"Metadata": clean_metadata(cronjob.metadata)}
    ctx.attributed = True


async def enhance_owner_fallback(ctx: "EnhancerContext") -> None:
    if ctx.attributed:
        return

    alert = ctx.alert
    alert.seed_fingerprint(ctx.original_message)

    owner = first_owner(ctx.obj) if ctx.obj is not None else None
    if owner is not None:
        alert.extend_fingerprint(owner.kind, owner.name)
    else:
        # Standalone object => most probably it has a unique name
        alert.extend_fingerprint(ctx.name)
