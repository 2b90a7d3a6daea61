# tests/test_backend.py
"""Unit tests for the HTTP and log-only monitoring backends."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from kubesignal.channels.backend import HttpBackend, LogBackend, build_backend
from kubesignal.models import Alert, CheckIn, CheckInStatus, MonitorConfig


def _client(post_side_effect=None) -> MagicMock:
    mock_client = MagicMock()
    resp = MagicMock()
    resp.raise_for_status = MagicMock()
    mock_client.post = AsyncMock(return_value=resp, side_effect=post_side_effect)
    mock_client.aclose = AsyncMock()
    return mock_client


def _checkin(**kwargs) -> CheckIn:
    return CheckIn(
        monitor_slug="nightly-backup",
        status=kwargs.pop("status", CheckInStatus.IN_PROGRESS),
        monitor_config=MonitorConfig(schedule="0 2 * * *"),
        **kwargs,
    )


class TestHttpBackend:

    @pytest.mark.asyncio
    async def test_new_checkin_gets_generated_id(self):
        mock_client = _client()
        backend = HttpBackend("https://monitor.example.com/", client=mock_client)

        checkin_id = await backend.submit_checkin(_checkin())

        assert len(checkin_id) == 32
        url = mock_client.post.call_args.args[0]
        payload = mock_client.post.call_args.kwargs["json"]
        assert url == "https://monitor.example.com/checkins"
        assert payload["check_in_id"] == checkin_id
        assert payload["status"] == "in_progress"
        assert payload["monitor_config"]["schedule"] == "0 2 * * *"
        assert "duration" not in payload

    @pytest.mark.asyncio
    async def test_terminal_checkin_keeps_existing_id(self):
        mock_client = _client()
        backend = HttpBackend("https://monitor.example.com", client=mock_client)

        checkin_id = await backend.submit_checkin(
            _checkin(status=CheckInStatus.OK, check_in_id="abc123", duration=12.5)
        )

        assert checkin_id == "abc123"
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["status"] == "ok"
        assert payload["duration"] == 12.5

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged_not_raised(self):
        mock_client = _client(post_side_effect=httpx.ConnectError("refused"))
        backend = HttpBackend("https://monitor.example.com", client=mock_client)

        checkin_id = await backend.submit_checkin(_checkin())
        await backend.submit_alert(Alert(message="boom"))

        assert checkin_id
        assert mock_client.post.await_count == 2

    @pytest.mark.asyncio
    async def test_environment_attached_to_alerts_and_checkins(self):
        mock_client = _client()
        backend = HttpBackend("https://monitor.example.com", environment="production", client=mock_client)

        await backend.submit_alert(Alert(message="OOMKilled", fingerprint=["OOMKilled", "web-0"]))
        alert_call = mock_client.post.call_args
        await backend.submit_checkin(_checkin())
        checkin_call = mock_client.post.call_args

        assert alert_call.args[0] == "https://monitor.example.com/alerts"
        assert alert_call.kwargs["json"]["environment"] == "production"
        assert alert_call.kwargs["json"]["fingerprint"] == ["OOMKilled", "web-0"]
        assert checkin_call.kwargs["json"]["environment"] == "production"

    def test_token_sent_as_bearer(self):
        with patch("httpx.AsyncClient") as mock_client_cls:
            HttpBackend("https://monitor.example.com", token="s3cret")

        assert mock_client_cls.call_args.kwargs["headers"] == {"Authorization": "Bearer s3cret"}

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        mock_client = _client()
        await HttpBackend("https://monitor.example.com", client=mock_client).close()
        mock_client.aclose.assert_awaited_once()


class TestLogBackend:

    @pytest.mark.asyncio
    async def test_checkin_ids_are_generated_or_kept(self):
        backend = LogBackend()

        generated = await backend.submit_checkin(_checkin())
        kept = await backend.submit_checkin(_checkin(status=CheckInStatus.ERROR, check_in_id="run-1"))

        assert generated and generated != "run-1"
        assert kept == "run-1"
        await backend.submit_alert(Alert(message="x"))
        await backend.close()


def test_build_backend_selects_by_url():
    assert isinstance(build_backend(""), LogBackend)
    with patch("httpx.AsyncClient"):
        assert isinstance(build_backend("https://monitor.example.com"), HttpBackend)
