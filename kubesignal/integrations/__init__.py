# kubesignal/integrations/__init__.py
# @ai-rules:
# 1. [Constraint]: INTEGRATIONS is a closed tuple. Adding an integration means adding an entry here, nothing is discovered at runtime.
# 2. [Pattern]: enabled(settings) is checked first; apply(defaults) mutates process-wide ScopeDefaults and may return data for other components.
"""Optional environment integrations run once at startup."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from ..config import Settings
from ..models import ScopeDefaults
from .gke import GkeMetadata, apply_gke

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Integration:
    name: str
    enabled: Callable[[Settings], bool]
    apply: Callable[[ScopeDefaults], Awaitable[Any]]


INTEGRATIONS: tuple[Integration, ...] = (
    Integration(
        name="gke",
        enabled=lambda settings: settings.gke_integration_enabled,
        apply=apply_gke,
    ),
)


async def run_integrations(
    settings: Settings,
    defaults: ScopeDefaults,
    integrations: Sequence[Integration] = INTEGRATIONS,
) -> dict[str, Any]:
    """Apply every enabled integration. Returns {name: result}."""
    logger.info("Running integrations...")
    results: dict[str, Any] = {}
    for integration in integrations:
        if not integration.enabled(settings):
            logger.debug(f"Integration {integration.name} disabled")
            continue
        results[integration.name] = await integration.apply(defaults)
    return results


__all__ = ["GkeMetadata", "INTEGRATIONS", "Integration", "run_integrations"]
