"""Health evaluation, alerting, scheduling and history."""

from envhealth.monitor.alerts import AlertManager
from envhealth.monitor.evaluator import HealthEvaluator, status_for_score
from envhealth.monitor.exceptions import HistoryOrderError, MonitorError, UnknownMetricError
from envhealth.monitor.factory import create_monitoring_system, create_transports
from envhealth.monitor.history import HIGHER_IS_BETTER, HistoryStore
from envhealth.monitor.scheduler import MonitoringScheduler
from envhealth.monitor.system import HealthMonitoringSystem
from envhealth.monitor.transports import (
    LogEmailTransport,
    NotificationTransport,
    WebhookTransport,
    build_alert_payload,
)

__all__ = [
    "HIGHER_IS_BETTER",
    "AlertManager",
    "HealthEvaluator",
    "HealthMonitoringSystem",
    "HistoryOrderError",
    "HistoryStore",
    "LogEmailTransport",
    "MonitorError",
    "MonitoringScheduler",
    "NotificationTransport",
    "UnknownMetricError",
    "WebhookTransport",
    "build_alert_payload",
    "create_monitoring_system",
    "create_transports",
    "status_for_score",
]
