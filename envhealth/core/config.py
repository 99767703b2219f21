"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from envhealth.core.types import TREND_METRICS, AlertSeverity, EscalationAction, Timeframe

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class PerformanceThresholds(BaseModel):
    """Limits a performance sample is checked against."""

    model_config = ConfigDict(frozen=True)

    response_time_ms: float = 1000.0
    error_rate_pct: float = 5.0
    throughput_min: float = 10.0


class EscalationRule(BaseModel):
    """Delayed notification policy for alerts of one severity."""

    model_config = ConfigDict(frozen=True)

    condition: AlertSeverity
    delay_minutes: float = 0.0
    action: EscalationAction = EscalationAction.NOTIFY
    recipients: list[str] = Field(default_factory=list)


class AlertingConfig(BaseModel):
    """Alert creation and notification configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    email_notifications: bool = False
    email_recipients: list[str] = Field(default_factory=list)
    webhook_url: SecretStr | None = None
    escalation_rules: list[EscalationRule] = Field(default_factory=list)
    auto_resolve_after_checks: int = 2


class RetentionConfig(BaseModel):
    """How long each class of historical record is kept."""

    model_config = ConfigDict(frozen=True)

    metrics_retention_days: float = 30.0
    alerts_retention_days: float = 7.0
    reports_retention_days: float = 90.0


class TrendConfig(BaseModel):
    """Trend computation embedded in every health report."""

    model_config = ConfigDict(frozen=True)

    timeframe: Timeframe = Timeframe.DAY
    buckets: int = 12
    tolerance: float = 0.02
    metrics: list[str] = Field(
        default_factory=lambda: ["health_score", "response_time_ms", "error_rate"],
    )

    @field_validator("metrics")
    @classmethod
    def _known_metrics(cls, value: list[str]) -> list[str]:
        unknown = [m for m in value if m not in TREND_METRICS]
        if unknown:
            raise ValueError(
                f"Unknown trend metric(s) {unknown}; expected one of {sorted(TREND_METRICS)}",
            )
        return value


class FunctionalityTestConfig(BaseModel):
    """Opt-in functionality test runs for non-production environments."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    every_n_checks: int = 10


class WebhookConfig(BaseModel):
    """Webhook transport configuration."""

    model_config = ConfigDict(frozen=True)

    timeout_secs: float = 10.0


class MonitoringConfig(BaseModel):
    """Monitor configuration — immutable for the lifetime of a monitor."""

    model_config = ConfigDict(frozen=True)

    check_interval_secs: float = 60.0
    performance_thresholds: PerformanceThresholds = PerformanceThresholds()
    alerting: AlertingConfig = AlertingConfig()
    retention: RetentionConfig = RetentionConfig()
    trends: TrendConfig = TrendConfig()
    functionality_tests: FunctionalityTestConfig = FunctionalityTestConfig()
    webhook: WebhookConfig = WebhookConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    monitoring: MonitoringConfig = MonitoringConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
