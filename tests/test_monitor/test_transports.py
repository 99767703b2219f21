"""Tests for notification transports — HTTP mocking, error handling, session management."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from envhealth.core.types import AlertSeverity, HealthAlert
from envhealth.monitor.transports import (
    LogEmailTransport,
    WebhookTransport,
    build_alert_payload,
)


# ── Helpers ─────────────────────────────────────────────────────


def _alert(**kw: object) -> HealthAlert:
    defaults: dict[str, object] = {
        "id": "alert-1",
        "environment_id": "dev",
        "severity": AlertSeverity.CRITICAL,
        "category": "connectivity",
        "title": "Database Connection Failed",
        "message": "Cannot connect to the database: Connection refused",
        "timestamp": 1000.0,
        "last_seen": 1000.0,
    }
    defaults.update(kw)
    return HealthAlert(**defaults)  # type: ignore[arg-type]


def _mock_response(status: int = 200, text: str = "ok") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _session(resp: AsyncMock | None = None, error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    if error is not None:
        session.post = MagicMock(side_effect=error)
    else:
        session.post = MagicMock(return_value=resp)
    session.closed = False
    return session


# ── Payload ─────────────────────────────────────────────────────


class TestPayload:
    def test_alert_serialised(self) -> None:
        payload = build_alert_payload(_alert())
        assert payload["alert"]["id"] == "alert-1"
        assert payload["alert"]["severity"] == "critical"
        assert "timestamp" in payload

    def test_extra_fields_merged(self) -> None:
        payload = build_alert_payload(_alert(), escalation={"action": "webhook"})
        assert payload["escalation"] == {"action": "webhook"}


# ── WebhookTransport ────────────────────────────────────────────


class TestWebhookTransport:
    async def test_send_success(self) -> None:
        transport = WebhookTransport()
        session = _session(_mock_response(200))
        transport._session = session

        payload = build_alert_payload(_alert())
        result = await transport.send("https://hooks.example.com/x", payload)
        assert result is True
        call_args = session.post.call_args
        assert call_args[0][0] == "https://hooks.example.com/x"
        assert call_args[1]["json"] == payload

    async def test_204_is_success(self) -> None:
        transport = WebhookTransport()
        transport._session = _session(_mock_response(204))
        assert await transport.send("https://hooks.example.com/x", {}) is True

    async def test_send_failure_status(self) -> None:
        transport = WebhookTransport()
        transport._session = _session(_mock_response(500, "internal error"))
        assert await transport.send("https://hooks.example.com/x", {}) is False

    async def test_send_exception(self) -> None:
        transport = WebhookTransport()
        transport._session = _session(error=ConnectionError("timeout"))
        assert await transport.send("https://hooks.example.com/x", {}) is False

    async def test_close_session(self) -> None:
        transport = WebhookTransport()
        session = AsyncMock()
        session.closed = False
        transport._session = session

        await transport.close()
        session.close.assert_awaited_once()

    async def test_close_when_no_session(self) -> None:
        transport = WebhookTransport()
        await transport.close()  # should not raise

    async def test_lazy_session_creation(self) -> None:
        transport = WebhookTransport(timeout_secs=3)
        assert transport._session is None
        session = transport._get_session()
        assert session is not None
        assert session.timeout.total == 3
        await transport.close()


# ── LogEmailTransport ───────────────────────────────────────────


class TestLogEmailTransport:
    async def test_records_message(self) -> None:
        transport = LogEmailTransport()
        payload = build_alert_payload(_alert())
        assert await transport.send("ops@example.com", payload) is True
        [(recipient, sent)] = transport.sent
        assert recipient == "ops@example.com"
        assert sent["alert"]["title"] == "Database Connection Failed"

    async def test_keeps_most_recent(self) -> None:
        transport = LogEmailTransport(max_kept=2)
        for i in range(3):
            await transport.send(f"user{i}@example.com", {})
        assert [r for r, _ in transport.sent] == ["user1@example.com", "user2@example.com"]
