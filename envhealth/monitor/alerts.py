"""AlertManager — turns health issues into deduplicated, escalating alerts."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import structlog

from envhealth.core.config import AlertingConfig, EscalationRule
from envhealth.core.types import (
    ISSUE_TO_ALERT_SEVERITY,
    AlertSeverity,
    EscalationAction,
    HealthAlert,
    HealthIssue,
    issue_key,
)
from envhealth.monitor.transports import NotificationTransport, build_alert_payload

logger = structlog.stdlib.get_logger()

MONITOR_CATEGORY = "monitor"


class AlertManager:
    """Owns the per-environment alert sets and their lifecycle.

    - ``reconcile`` matches the current issues against active alerts:
      new issue → new alert, recurring issue → ``last_seen`` refreshed
      (severity raised if the issue got worse), absent issue → counted
      towards auto-resolution after ``auto_resolve_after_checks`` checks.
    - At most one active alert exists per (environment, category+title).
    - ``dispatch`` notifies the default targets and runs matching
      escalation rules. Delivery failures are logged, never raised.
    - Nothing happens when alerting is disabled.

    Transports are looked up by name: ``"webhook"`` and ``"email"`` for the
    built-in actions, ``"pause"``/``"rollback"`` for operator hooks.
    """

    def __init__(
        self,
        config: AlertingConfig | None = None,
        transports: Mapping[str, NotificationTransport] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or AlertingConfig()
        self._transports: dict[str, NotificationTransport] = dict(transports or {})
        self._clock = clock
        self._alerts: dict[str, list[HealthAlert]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def transports(self) -> dict[str, NotificationTransport]:
        return dict(self._transports)

    @property
    def pending_escalations(self) -> int:
        return len(self._pending)

    # ── Queries ─────────────────────────────────────────────────

    def active_alerts(self, environment_id: str) -> list[HealthAlert]:
        """Copies of the unresolved alerts for an environment."""
        return [
            a.model_copy()
            for a in self._alerts.get(environment_id, [])
            if a.active
        ]

    def all_alerts(self, environment_id: str) -> list[HealthAlert]:
        """Copies of every retained alert, resolved ones included."""
        return [a.model_copy() for a in self._alerts.get(environment_id, [])]

    # ── Reconciliation ──────────────────────────────────────────

    def reconcile(
        self, environment_id: str, issues: Iterable[HealthIssue],
    ) -> list[HealthAlert]:
        """Reconcile the current issues with the active alerts.

        Returns the alerts that were created or escalated and still need
        to be dispatched.
        """
        if not self._config.enabled:
            return []

        now = self._clock()
        active = self._active_by_key(environment_id)
        seen: set[str] = set()
        to_dispatch: list[HealthAlert] = []

        for issue in issues:
            key = issue_key(issue.category, issue.title)
            seen.add(key)
            severity = ISSUE_TO_ALERT_SEVERITY[issue.severity]
            existing = active.get(key)

            if existing is None:
                alert = self._create(
                    environment_id, severity, issue.category, issue.title,
                    issue.description, now,
                )
                active[key] = alert
                to_dispatch.append(alert)
                continue

            existing.last_seen = now
            existing.missed_checks = 0
            existing.message = issue.description
            if severity.rank > existing.severity.rank:
                logger.warning(
                    "alert_escalated",
                    environment_id=environment_id,
                    alert_id=existing.id,
                    title=existing.title,
                    from_severity=existing.severity.value,
                    to_severity=severity.value,
                )
                existing.severity = severity
                existing.escalated = True
                to_dispatch.append(existing)

        threshold = self._config.auto_resolve_after_checks
        for key, alert in active.items():
            if key in seen:
                continue
            alert.missed_checks += 1
            if threshold > 0 and alert.missed_checks >= threshold:
                alert.resolved_at = now
                logger.info(
                    "alert_auto_resolved",
                    environment_id=environment_id,
                    alert_id=alert.id,
                    title=alert.title,
                    missed_checks=alert.missed_checks,
                )

        return to_dispatch

    def raise_alert(
        self,
        environment_id: str,
        severity: AlertSeverity,
        title: str,
        message: str,
        category: str = MONITOR_CATEGORY,
    ) -> HealthAlert | None:
        """Raise an alert not tied to a health issue (e.g. a failed check).

        Returns the new alert, or None when alerting is disabled or an
        equivalent alert is already active (its ``last_seen`` is refreshed).
        """
        if not self._config.enabled:
            return None

        now = self._clock()
        existing = self._active_by_key(environment_id).get(issue_key(category, title))
        if existing is not None:
            existing.last_seen = now
            existing.missed_checks = 0
            existing.message = message
            return None
        return self._create(environment_id, severity, category, title, message, now)

    def _active_by_key(self, environment_id: str) -> dict[str, HealthAlert]:
        return {
            a.key: a
            for a in self._alerts.get(environment_id, [])
            if a.active
        }

    def _create(
        self,
        environment_id: str,
        severity: AlertSeverity,
        category: str,
        title: str,
        message: str,
        now: float,
    ) -> HealthAlert:
        alert = HealthAlert(
            id=f"alert-{uuid.uuid4().hex[:12]}",
            environment_id=environment_id,
            severity=severity,
            category=str(category),
            title=title,
            message=message,
            timestamp=now,
            last_seen=now,
        )
        self._alerts.setdefault(environment_id, []).append(alert)
        logger.warning(
            "alert_created",
            environment_id=environment_id,
            alert_id=alert.id,
            severity=severity.value,
            title=title,
        )
        return alert

    # ── Lifecycle ───────────────────────────────────────────────

    def acknowledge(self, environment_id: str, alert_id: str) -> bool:
        """Mark an alert acknowledged. Unknown ids are ignored."""
        alert = self._find(environment_id, alert_id)
        if alert is None or alert.acknowledged:
            return False
        alert.acknowledged = True
        alert.acknowledged_at = self._clock()
        logger.info("alert_acknowledged", environment_id=environment_id, alert_id=alert_id)
        return True

    def resolve(self, environment_id: str, alert_id: str) -> bool:
        """Mark an alert resolved; it stays retained until purged."""
        alert = self._find(environment_id, alert_id)
        if alert is None or not alert.active:
            return False
        alert.resolved_at = self._clock()
        logger.info("alert_resolved", environment_id=environment_id, alert_id=alert_id)
        return True

    def purge(self, cutoff: float) -> int:
        """Drop resolved alerts resolved before *cutoff*. Returns the count removed."""
        removed = 0
        for env_id in list(self._alerts):
            kept = [
                a for a in self._alerts[env_id]
                if a.resolved_at is None or a.resolved_at >= cutoff
            ]
            removed += len(self._alerts[env_id]) - len(kept)
            if kept:
                self._alerts[env_id] = kept
            else:
                del self._alerts[env_id]
        return removed

    def _find(self, environment_id: str, alert_id: str) -> HealthAlert | None:
        for alert in self._alerts.get(environment_id, []):
            if alert.id == alert_id:
                return alert
        return None

    # ── Dispatch ────────────────────────────────────────────────

    async def dispatch(self, alerts: Iterable[HealthAlert]) -> None:
        """Notify default targets and apply escalation rules for each alert."""
        if not self._config.enabled:
            return
        for alert in alerts:
            await self._notify_defaults(alert, build_alert_payload(alert))
            for rule in self._config.escalation_rules:
                if rule.condition != alert.severity:
                    continue
                if rule.delay_minutes <= 0:
                    await self._escalate(alert, rule)
                else:
                    task = asyncio.create_task(self._escalate_later(alert, rule))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)

    async def _notify_defaults(self, alert: HealthAlert, payload: dict[str, Any]) -> None:
        if self._config.webhook_url is not None:
            await self._deliver("webhook", self._config.webhook_url.get_secret_value(), payload)
        if self._config.email_notifications:
            for recipient in self._config.email_recipients:
                await self._deliver("email", recipient, payload)

    async def _escalate_later(self, alert: HealthAlert, rule: EscalationRule) -> None:
        await asyncio.sleep(rule.delay_minutes * 60)
        if not alert.active or alert.acknowledged:
            logger.info(
                "escalation_skipped",
                alert_id=alert.id,
                acknowledged=alert.acknowledged,
                resolved=not alert.active,
            )
            return
        await self._escalate(alert, rule)

    async def _escalate(self, alert: HealthAlert, rule: EscalationRule) -> None:
        payload = build_alert_payload(
            alert,
            escalation={
                "action": rule.action.value,
                "delay_minutes": rule.delay_minutes,
                "recipients": list(rule.recipients),
            },
        )
        logger.warning(
            "escalation_triggered",
            alert_id=alert.id,
            environment_id=alert.environment_id,
            action=rule.action.value,
            recipients=len(rule.recipients),
        )

        if rule.action == EscalationAction.WEBHOOK:
            for target in rule.recipients:
                await self._deliver("webhook", target, payload)
        elif rule.action == EscalationAction.EMAIL:
            for target in rule.recipients:
                await self._deliver("email", target, payload)
        elif rule.action == EscalationAction.NOTIFY:
            await self._notify_defaults(alert, payload)
            for target in rule.recipients:
                await self._deliver("email", target, payload)
        else:
            # pause / rollback are carried out by an operator hook, if one is registered.
            if rule.action.value not in self._transports:
                logger.warning(
                    "escalation_action_unhandled",
                    alert_id=alert.id,
                    action=rule.action.value,
                )
                return
            for target in rule.recipients or [alert.environment_id]:
                await self._deliver(rule.action.value, target, payload)

    async def _deliver(self, kind: str, target: str, payload: dict[str, Any]) -> bool:
        transport = self._transports.get(kind)
        if transport is None:
            logger.warning("notification_transport_missing", kind=kind)
            return False
        try:
            ok = await transport.send(target, payload)
        except Exception:
            logger.exception(
                "notification_dispatch_error",
                transport=type(transport).__name__,
                kind=kind,
            )
            return False
        if not ok:
            logger.warning("notification_not_delivered", kind=kind)
        return ok

    async def drain(self) -> None:
        """Wait for all delayed escalations to finish."""
        if self._pending:
            await asyncio.wait(set(self._pending))

    async def close(self) -> None:
        """Cancel pending escalations and close every transport."""
        for task in list(self._pending):
            task.cancel()
        for task in list(self._pending):
            try:
                await task
            except asyncio.CancelledError:
                pass
        for transport in self._transports.values():
            try:
                await transport.close()
            except Exception:
                logger.exception("transport_close_error", transport=type(transport).__name__)

    def snapshot(self) -> dict[str, object]:
        active = sum(
            1 for alerts in self._alerts.values() for a in alerts if a.active
        )
        retained = sum(len(alerts) for alerts in self._alerts.values())
        return {
            "enabled": self._config.enabled,
            "active_alerts": active,
            "retained_alerts": retained,
            "pending_escalations": len(self._pending),
        }
