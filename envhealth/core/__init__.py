"""Core module — config, types, logging."""

from envhealth.core.config import (
    MonitoringConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from envhealth.core.logging import environment_context, setup_logging
from envhealth.core.types import (
    AlertSeverity,
    Environment,
    HealthAlert,
    HealthIssue,
    HealthReport,
    HealthState,
    HealthStatus,
    HealthTrend,
    IssueCategory,
    IssueSeverity,
    PerformanceMetrics,
    Timeframe,
    TrendDirection,
    ValidationResult,
)

__all__ = [
    "AlertSeverity",
    "Environment",
    "HealthAlert",
    "HealthIssue",
    "HealthReport",
    "HealthState",
    "HealthStatus",
    "HealthTrend",
    "IssueCategory",
    "IssueSeverity",
    "MonitoringConfig",
    "PerformanceMetrics",
    "Settings",
    "Timeframe",
    "TrendDirection",
    "ValidationResult",
    "environment_context",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
