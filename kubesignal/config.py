# kubesignal/config.py
# @ai-rules:
# 1. [Constraint]: Environment is read exactly once, by load_settings(). Core components receive plain parameters.
# 2. [Pattern]: NAMESPACE_ALL ("") is the all-namespaces wildcard, mirroring the cluster API convention.
# 3. [Gotcha]: K8S_GLOBAL_TAG_<KEY> keeps the key casing as written in the environment.
"""Startup configuration resolved from environment variables."""
from __future__ import annotations

import logging
import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

NAMESPACE_ALL = ""
ALL_NAMESPACES_LABEL = "__all__"
DEFAULT_NAMESPACES = ["default"]
GLOBAL_TAG_PREFIX = "K8S_GLOBAL_TAG_"

_LABEL_VALUE_MAX_LENGTH = 63
_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised when the environment describes an unusable configuration."""


class Settings(BaseModel):
    """Everything the agent needs to know at startup."""
    namespaces: list[str] = Field(default_factory=lambda: list(DEFAULT_NAMESPACES))
    watch_historical: bool = False
    crons_enabled: bool = True
    gke_integration_enabled: bool = False
    global_tags: dict[str, str] = Field(default_factory=dict)

    informer_sync_timeout: float = Field(60.0, gt=0)
    informer_resync_period: float = Field(300.0, ge=0)
    watch_retry_delay: float = Field(1.0, ge=0)
    watch_timeout: int = Field(300, ge=1)
    event_buffer_size: int = Field(1000, ge=1)
    event_buffer_max_age: float = Field(3600.0, gt=0)

    # Same bounds as MonitorConfig, so a bad value fails at startup
    crons_max_runtime: int = Field(5, ge=1)
    crons_checkin_margin: int = Field(3, ge=0)

    backend_url: str = ""
    backend_token: str = ""
    environment: str = ""

    @property
    def watch_all_namespaces(self) -> bool:
        return self.namespaces == [NAMESPACE_ALL]


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def is_valid_label_value(value: str) -> bool:
    return len(value) <= _LABEL_VALUE_MAX_LENGTH and bool(_LABEL_VALUE_RE.match(value))


def parse_namespaces(raw: Optional[str]) -> list[str]:
    """
    Parse the namespace selection.

    Empty -> ["default"]; "__all__" -> [NAMESPACE_ALL]; otherwise a
    comma-separated list of valid, de-duplicated namespace names.
    """
    raw = (raw or "").strip()
    if not raw:
        return list(DEFAULT_NAMESPACES)
    if raw == ALL_NAMESPACES_LABEL:
        return [NAMESPACE_ALL]

    namespaces: list[str] = []
    for part in raw.split(","):
        namespace = part.strip()
        if not namespace:
            continue
        if not is_valid_label_value(namespace):
            raise ConfigError(f"Invalid namespace name: {namespace!r}")
        if namespace not in namespaces:
            namespaces.append(namespace)

    if not namespaces:
        raise ConfigError("No namespaces specified")
    return namespaces


def parse_global_tags(environ: Mapping[str, str]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for key, value in environ.items():
        key = key.strip()
        if not key.startswith(GLOBAL_TAG_PREFIX):
            continue
        tag_key = key[len(GLOBAL_TAG_PREFIX):]
        if not tag_key:
            continue
        tags[tag_key] = value.strip()
        logger.info(f"Global tag detected: {tag_key}={tags[tag_key]}")
    return tags


def _number(environ: Mapping[str, str], key: str, default: float, cast=float):
    raw = environ.get(key, "").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from *environ* (defaults to os.environ)."""
    env = os.environ if environ is None else environ
    try:
        return _settings_from(env)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _settings_from(env: Mapping[str, str]) -> Settings:
    return Settings(
        namespaces=parse_namespaces(env.get("K8S_WATCH_NAMESPACES")),
        watch_historical=is_truthy(env.get("K8S_WATCH_HISTORICAL")),
        crons_enabled=is_truthy(env.get("K8S_CRONS_ENABLED", "true")),
        gke_integration_enabled=is_truthy(env.get("K8S_INTEGRATION_GKE_ENABLED")),
        global_tags=parse_global_tags(env),
        informer_sync_timeout=_number(env, "K8S_INFORMER_SYNC_TIMEOUT", 60.0),
        informer_resync_period=_number(env, "K8S_INFORMER_RESYNC_PERIOD", 300.0),
        watch_retry_delay=_number(env, "K8S_WATCH_RETRY_DELAY", 1.0),
        watch_timeout=_number(env, "K8S_WATCH_TIMEOUT", 300, cast=int),
        event_buffer_size=_number(env, "K8S_EVENT_BUFFER_SIZE", 1000, cast=int),
        event_buffer_max_age=_number(env, "K8S_EVENT_BUFFER_MAX_AGE", 3600.0),
        crons_max_runtime=_number(env, "CRONS_MAX_RUNTIME", 5, cast=int),
        crons_checkin_margin=_number(env, "CRONS_CHECKIN_MARGIN", 3, cast=int),
        backend_url=env.get("MONITOR_BACKEND_URL", "").strip().rstrip("/"),
        backend_token=env.get("MONITOR_BACKEND_TOKEN", "").strip(),
        environment=env.get("MONITOR_ENVIRONMENT", "").strip(),
    )
