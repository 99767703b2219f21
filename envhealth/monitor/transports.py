"""Notification transports — webhook (aiohttp) and log-only email delivery."""

from __future__ import annotations

import abc
import datetime
from collections import deque
from typing import Any

import aiohttp
import structlog

from envhealth.core.types import HealthAlert

logger = structlog.stdlib.get_logger()


def build_alert_payload(alert: HealthAlert, **extra: Any) -> dict[str, Any]:
    """JSON body sent for an alert notification."""
    payload: dict[str, Any] = {
        "alert": alert.model_dump(mode="json"),
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
    }
    payload.update(extra)
    return payload


class NotificationTransport(abc.ABC):
    """Base class for alert delivery.

    ``send`` reports failure by returning False or raising; callers treat
    both the same way.
    """

    @abc.abstractmethod
    async def send(self, target: str, payload: dict[str, Any]) -> bool:
        """Deliver *payload* to *target*. Returns True on success."""

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class WebhookTransport(NotificationTransport):
    """POSTs the alert payload as JSON to a webhook URL."""

    def __init__(self, timeout_secs: float = 10.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def send(self, target: str, payload: dict[str, Any]) -> bool:
        try:
            session = self._get_session()
            async with session.post(target, json=payload) as resp:
                if 200 <= resp.status < 300:
                    return True
                body = await resp.text()
                logger.warning(
                    "webhook_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("webhook_send_error")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class LogEmailTransport(NotificationTransport):
    """Records email notifications in the log instead of sending mail.

    Stands in where no mail relay is configured; every "sent" message is
    kept in ``sent`` (most recent *max_kept*) for inspection.
    """

    def __init__(self, max_kept: int = 100) -> None:
        self.sent: deque[tuple[str, dict[str, Any]]] = deque(maxlen=max_kept)

    async def send(self, target: str, payload: dict[str, Any]) -> bool:
        alert = payload.get("alert", {})
        logger.info(
            "email_alert",
            recipient=target,
            title=alert.get("title", ""),
            severity=alert.get("severity", ""),
            message=alert.get("message", ""),
        )
        self.sent.append((target, payload))
        return True
