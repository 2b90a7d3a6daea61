# kubesignal/channels/backend.py
# @ai-rules:
# 1. [Constraint]: Delivery failures stay here. submit_* never raises into observers or the check-in state machine.
# 2. [Pattern]: New-run check-in IDs are generated client-side (uuid4 hex) so the caller always gets one back.
# 3. [Pattern]: LogBackend is the fallback when MONITOR_BACKEND_URL is unset. Same contract, no network.
"""Outbound transport for alerts and check-ins."""
from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

import httpx

from ..models import Alert, CheckIn

logger = logging.getLogger(__name__)

BACKEND_TIMEOUT = 10.0


class MonitoringBackend(Protocol):
    """What the core needs from the monitoring backend."""

    async def submit_alert(self, alert: Alert) -> None: ...

    async def submit_checkin(self, checkin: CheckIn) -> str: ...

    async def close(self) -> None: ...


def _ensure_checkin_id(checkin: CheckIn) -> CheckIn:
    if checkin.check_in_id:
        return checkin
    return checkin.model_copy(update={"check_in_id": uuid.uuid4().hex})


class HttpBackend:
    """
    JSON-over-HTTP backend.

    POST {base_url}/alerts    body: Alert
    POST {base_url}/checkins  body: CheckIn
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        environment: str = "",
        timeout: float = BACKEND_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.environment = environment or None
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def _post(self, path: str, payload: dict) -> bool:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Backend delivery to {url} failed: {e}")
            return False

    async def submit_alert(self, alert: Alert) -> None:
        if self.environment and not alert.environment:
            alert = alert.model_copy(update={"environment": self.environment})
        await self._post("/alerts", alert.model_dump(mode="json"))

    async def submit_checkin(self, checkin: CheckIn) -> str:
        checkin = _ensure_checkin_id(checkin)
        if self.environment and not checkin.environment:
            checkin = checkin.model_copy(update={"environment": self.environment})
        await self._post("/checkins", checkin.model_dump(mode="json", exclude_none=True))
        return checkin.check_in_id

    async def close(self) -> None:
        await self._client.aclose()


class LogBackend:
    """Logs what would be sent. Used when no backend URL is configured."""

    async def submit_alert(self, alert: Alert) -> None:
        logger.info(f"[alert] {alert.level.value}: {alert.message} fingerprint={alert.fingerprint}")

    async def submit_checkin(self, checkin: CheckIn) -> str:
        checkin = _ensure_checkin_id(checkin)
        logger.info(
            f"[check-in] {checkin.monitor_slug}: {checkin.status.value} id={checkin.check_in_id}"
        )
        return checkin.check_in_id

    async def close(self) -> None:
        return None


def build_backend(base_url: str, token: str = "", environment: str = "") -> MonitoringBackend:
    if not base_url:
        logger.warning("MONITOR_BACKEND_URL not set -- alerts and check-ins will only be logged")
        return LogBackend()
    return HttpBackend(base_url, token=token, environment=environment)
