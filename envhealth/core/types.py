"""Domain types for environment validation and health monitoring."""

from __future__ import annotations

import re
import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthState(StrEnum):
    """Categorical health status of an environment."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class IssueSeverity(StrEnum):
    """Severity of a detected health issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueCategory(StrEnum):
    """Dimension a health issue was detected in."""

    CONNECTIVITY = "connectivity"
    PERFORMANCE = "performance"
    DATA = "data"
    SECURITY = "security"
    FUNCTIONALITY = "functionality"


class AlertSeverity(StrEnum):
    """Operator-facing alert severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _ALERT_RANK[self]


_ALERT_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.ERROR: 2,
    AlertSeverity.CRITICAL: 3,
}

ISSUE_TO_ALERT_SEVERITY: dict[IssueSeverity, AlertSeverity] = {
    IssueSeverity.LOW: AlertSeverity.INFO,
    IssueSeverity.MEDIUM: AlertSeverity.WARNING,
    IssueSeverity.HIGH: AlertSeverity.ERROR,
    IssueSeverity.CRITICAL: AlertSeverity.CRITICAL,
}


class EscalationAction(StrEnum):
    """What an escalation rule does once its delay has elapsed."""

    PAUSE = "pause"
    ROLLBACK = "rollback"
    NOTIFY = "notify"
    WEBHOOK = "webhook"
    EMAIL = "email"


class Timeframe(StrEnum):
    """Wall-clock windows for history and trend queries."""

    HOUR = "1h"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def seconds(self) -> float:
        return _TIMEFRAME_SECS[self]


_TIMEFRAME_SECS: dict[Timeframe, float] = {
    Timeframe.HOUR: 3600.0,
    Timeframe.DAY: 86400.0,
    Timeframe.WEEK: 7 * 86400.0,
    Timeframe.MONTH: 30 * 86400.0,
}


class TrendDirection(StrEnum):
    """Direction of a metric over a window."""

    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class MonitorState(StrEnum):
    """Scheduler state of a single environment."""

    STOPPED = "stopped"
    RUNNING = "running"


# Trendable metrics; True when a rising value means the environment is getting better.
TREND_METRICS: dict[str, bool] = {
    "health_score": True,
    "throughput": True,
    "response_time_ms": False,
    "error_rate": False,
}


# ── Environment ────────────────────────────────────────────────


class Environment(BaseModel):
    """Descriptor of a remote database-backed environment.

    Owned by the caller; nothing in this package mutates it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str = ""
    anon_key: str = ""
    service_key: str = ""
    database_url: str = ""
    is_production: bool = False
    allow_writes: bool = False


# ── Validation Types ───────────────────────────────────────────


class ConnectivityResult(BaseModel):
    """Outcome of the connectivity probe."""

    connected: bool
    response_time_ms: float = 0.0
    version: str | None = None
    error: str | None = None


class SchemaResult(BaseModel):
    """Outcome of comparing the live schema against the expected tables."""

    is_valid: bool = False
    tables_found: int = 0
    expected_tables: list[str] = Field(default_factory=list)
    missing_tables: list[str] = Field(default_factory=list)
    extra_tables: list[str] = Field(default_factory=list)
    functions_found: int = 0
    triggers_found: int = 0
    policies_found: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DataIntegrityResult(BaseModel):
    """Record counts and consistency violations across core tables."""

    is_valid: bool = False
    total_records: int = 0
    orphaned_records: int = 0
    duplicate_records: int = 0
    null_constraint_violations: int = 0
    foreign_key_violations: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class AuditSystemResult(BaseModel):
    """Presence of the audit trail machinery."""

    is_valid: bool = False
    audit_tables_present: bool = False
    audit_triggers_active: bool = False
    audit_functions_working: bool = False
    audit_logs_recent: bool = False
    errors: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Point-in-time validation of one environment."""

    model_config = ConfigDict(frozen=True)

    connectivity: ConnectivityResult
    # "schema" would shadow BaseModel.schema().
    schema_result: SchemaResult
    data_integrity: DataIntegrityResult
    audit_system: AuditSystemResult
    overall_score: int = Field(default=0, ge=0, le=100)
    is_valid: bool = False
    timestamp: float = Field(default_factory=time.time)


# ── Performance & Functionality ────────────────────────────────


class PerformanceMetrics(BaseModel):
    """A single performance sample for an environment."""

    response_time_ms: float = 0.0
    throughput: float = 0.0
    error_rate: float = 0.0
    connection_count: int = 0
    active_queries: int = 0
    timestamp: float = Field(default_factory=time.time)

    @field_validator("error_rate")
    @classmethod
    def _clamp_error_rate(cls, value: float) -> float:
        return min(100.0, max(0.0, value))

    @classmethod
    def failed(cls, timestamp: float | None = None) -> PerformanceMetrics:
        """Sentinel sample used when the sampler itself failed."""
        return cls(
            response_time_ms=-1.0,
            throughput=0.0,
            error_rate=100.0,
            connection_count=0,
            active_queries=0,
            timestamp=timestamp if timestamp is not None else time.time(),
        )

    @property
    def is_sentinel(self) -> bool:
        return self.response_time_ms < 0


class FunctionalityResult(BaseModel):
    """Summary of a functionality test suite run."""

    is_valid: bool = False
    overall_score: int = 0
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    total_duration_ms: float = 0.0
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


# ── Health Types ───────────────────────────────────────────────


def issue_key(category: IssueCategory | str, title: str) -> str:
    """Stable identifier for an issue or alert: category plus slugged title."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return f"{category}:{slug}"


class HealthIssue(BaseModel):
    """A detected deficiency, deduplicated across checks by category+title."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: IssueSeverity
    category: IssueCategory
    title: str
    description: str = ""
    recommendation: str = ""
    first_detected: float = 0.0
    last_seen: float = 0.0
    resolved: bool = False


class HealthStatus(BaseModel):
    """Fused status of validation and performance."""

    model_config = ConfigDict(frozen=True)

    status: HealthState
    score: int = Field(default=0, ge=0, le=100)
    last_checked: float = 0.0
    uptime: int = 0
    issues: list[HealthIssue] = Field(default_factory=list)


class HealthAlert(BaseModel):
    """Operator-facing alert with acknowledge/resolve lifecycle."""

    id: str
    environment_id: str
    severity: AlertSeverity
    category: str = ""
    title: str
    message: str = ""
    timestamp: float = 0.0
    last_seen: float = 0.0
    acknowledged: bool = False
    acknowledged_at: float | None = None
    resolved_at: float | None = None
    escalated: bool = False
    missed_checks: int = 0

    @property
    def key(self) -> str:
        return issue_key(self.category, self.title)

    @property
    def active(self) -> bool:
        return self.resolved_at is None


class TrendPoint(BaseModel):
    """A single (timestamp, value) observation of a metric."""

    model_config = ConfigDict(frozen=True)

    timestamp: float
    value: float


class HealthTrend(BaseModel):
    """Directional summary of one metric over a window."""

    model_config = ConfigDict(frozen=True)

    metric: str
    timeframe: Timeframe
    values: list[TrendPoint] = Field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    slope: float = 0.0


class HealthReport(BaseModel):
    """Result of one health check — appended to history, never modified."""

    model_config = ConfigDict(frozen=True)

    environment_id: str
    environment_name: str = ""
    timestamp: float
    health_status: HealthStatus
    performance_metrics: PerformanceMetrics
    validation_result: ValidationResult
    functionality_result: FunctionalityResult | None = None
    trends: list[HealthTrend] = Field(default_factory=list)
    alerts: list[HealthAlert] = Field(default_factory=list)
