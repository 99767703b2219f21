"""Tests for envhealth/core/config.py — YAML loading, defaults, SecretStr."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from envhealth.core.config import (
    AlertingConfig,
    EscalationRule,
    LoggingConfig,
    MonitoringConfig,
    PerformanceThresholds,
    RetentionConfig,
    Settings,
    TrendConfig,
    get_settings,
    load_settings,
    reset_settings,
)
from envhealth.core.types import AlertSeverity, EscalationAction, Timeframe


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_thresholds(self) -> None:
        cfg = PerformanceThresholds()
        assert cfg.response_time_ms == 1000.0
        assert cfg.error_rate_pct == 5.0
        assert cfg.throughput_min == 10.0

    def test_default_alerting(self) -> None:
        cfg = AlertingConfig()
        assert cfg.enabled is True
        assert cfg.email_notifications is False
        assert cfg.webhook_url is None
        assert cfg.escalation_rules == []
        assert cfg.auto_resolve_after_checks == 2

    def test_default_retention(self) -> None:
        cfg = RetentionConfig()
        assert cfg.metrics_retention_days == 30.0
        assert cfg.alerts_retention_days == 7.0
        assert cfg.reports_retention_days == 90.0

    def test_default_trends(self) -> None:
        cfg = TrendConfig()
        assert cfg.timeframe == Timeframe.DAY
        assert cfg.metrics == ["health_score", "response_time_ms", "error_rate"]

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.monitoring.check_interval_secs == 60.0
        assert s.monitoring.functionality_tests.enabled is False
        assert s.logging.level == "INFO"


class TestImmutability:
    def test_monitoring_config_frozen(self) -> None:
        cfg = MonitoringConfig()
        with pytest.raises(ValidationError):
            cfg.check_interval_secs = 5.0  # type: ignore[misc]

    def test_escalation_rule_parses_strings(self) -> None:
        rule = EscalationRule(condition="critical", delay_minutes=5, action="webhook")  # type: ignore[arg-type]
        assert rule.condition == AlertSeverity.CRITICAL
        assert rule.action == EscalationAction.WEBHOOK

    def test_unknown_action_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EscalationRule(condition="critical", action="page")  # type: ignore[arg-type]

    def test_unknown_trend_metric_rejected(self) -> None:
        with pytest.raises(ValidationError, match="latency"):
            TrendConfig(metrics=["health_score", "latency"])

    def test_every_known_trend_metric_accepted(self) -> None:
        cfg = TrendConfig(metrics=["health_score", "throughput", "response_time_ms", "error_rate"])
        assert len(cfg.metrics) == 4


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "monitoring": {
                "check_interval_secs": 15,
                "performance_thresholds": {"response_time_ms": 250},
                "alerting": {
                    "webhook_url": "https://hooks.example.com/x",
                    "email_notifications": True,
                    "email_recipients": ["ops@example.com"],
                    "escalation_rules": [
                        {"condition": "critical", "delay_minutes": 10, "action": "email",
                         "recipients": ["oncall@example.com"]},
                    ],
                },
                "trends": {"timeframe": "1h", "buckets": 6},
            },
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)
        mon = settings.monitoring

        assert mon.check_interval_secs == 15
        assert mon.performance_thresholds.response_time_ms == 250
        assert mon.performance_thresholds.error_rate_pct == 5.0
        assert mon.alerting.webhook_url is not None
        assert mon.alerting.webhook_url.get_secret_value() == "https://hooks.example.com/x"
        assert mon.alerting.escalation_rules[0].action == EscalationAction.EMAIL
        assert mon.trends.timeframe == Timeframe.HOUR
        assert mon.trends.buckets == 6
        assert settings.logging.format == "console"

    def test_webhook_url_masked_in_repr(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({
            "monitoring": {"alerting": {"webhook_url": "https://secret.example.com/token"}},
        }))
        settings = load_settings(config_file)
        assert "secret.example.com" not in repr(settings.monitoring.alerting)

    def test_unknown_trend_metric_in_yaml_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({
            "monitoring": {"trends": {"metrics": ["health_score", "cpu"]}},
        }))
        with pytest.raises(ValidationError, match="cpu"):
            load_settings(config_file)

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nope.yaml")
        assert settings.monitoring.check_interval_secs == 60.0

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.logging.level == "INFO"


class TestCache:
    def test_get_settings_caches(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"logging": {"level": "WARNING"}}))
        loaded = load_settings(config_file)
        assert get_settings() is loaded

    def test_reset_clears_cache(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"logging": {"level": "WARNING"}}))
        loaded = load_settings(config_file)
        reset_settings()
        assert get_settings() is not loaded
