"""Convenience factory for wiring the monitoring stack."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping

from envhealth.core.config import MonitoringConfig
from envhealth.core.types import EscalationAction
from envhealth.monitor.system import HealthMonitoringSystem
from envhealth.monitor.transports import (
    LogEmailTransport,
    NotificationTransport,
    WebhookTransport,
)
from envhealth.probes.base import DataProbe, FunctionalitySuite, PerformanceSampler
from envhealth.probes.safety import ProductionSafetyGuard


def create_transports(config: MonitoringConfig) -> dict[str, NotificationTransport]:
    """Build the transports the alerting config actually needs."""
    alerting = config.alerting
    actions = {rule.action for rule in alerting.escalation_rules}
    transports: dict[str, NotificationTransport] = {}

    if alerting.webhook_url is not None or EscalationAction.WEBHOOK in actions:
        transports["webhook"] = WebhookTransport(timeout_secs=config.webhook.timeout_secs)

    if (
        alerting.email_notifications
        or EscalationAction.EMAIL in actions
        or EscalationAction.NOTIFY in actions
    ):
        transports["email"] = LogEmailTransport()

    return transports


def create_monitoring_system(
    config: MonitoringConfig,
    probe: DataProbe,
    *,
    sampler: PerformanceSampler | None = None,
    guard: ProductionSafetyGuard | None = None,
    functionality_suite: FunctionalitySuite | None = None,
    extra_transports: Mapping[str, NotificationTransport] | None = None,
    clock: Callable[[], float] = time.time,
) -> HealthMonitoringSystem:
    """Build a ``HealthMonitoringSystem`` with transports derived from config.

    *extra_transports* registers operator hooks (e.g. ``"pause"``,
    ``"rollback"``) or overrides the built-in ones.
    """
    transports = create_transports(config)
    if extra_transports:
        transports.update(extra_transports)

    return HealthMonitoringSystem(
        config,
        probe,
        sampler=sampler,
        guard=guard,
        transports=transports,
        functionality_suite=functionality_suite,
        clock=clock,
    )
