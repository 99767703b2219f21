"""HealthEvaluator — fuses a validation result and a performance sample."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping

from envhealth.core.config import PerformanceThresholds
from envhealth.core.types import (
    HealthIssue,
    HealthState,
    HealthStatus,
    IssueCategory,
    IssueSeverity,
    PerformanceMetrics,
    ValidationResult,
    issue_key,
)

HEALTHY_MIN_SCORE = 80
WARNING_MIN_SCORE = 50
CRITICAL_SCORE_FLOOR = 10

RESPONSE_TIME_PENALTY = 15
ERROR_RATE_PENALTY = 25
THROUGHPUT_PENALTY = 10


def status_for_score(score: int) -> HealthState:
    """Map a 0–100 score to healthy / warning / critical."""
    if score >= HEALTHY_MIN_SCORE:
        return HealthState.HEALTHY
    if score >= WARNING_MIN_SCORE:
        return HealthState.WARNING
    return HealthState.CRITICAL


class HealthEvaluator:
    """Derives a ``HealthStatus`` (state, score, issues) from one check.

    The score starts at the validation ``overall_score`` and is reduced for
    every performance threshold breach. Each failing sub-check yields
    exactly one issue. Issues seen in the previous check keep their
    ``first_detected`` time.

    Evaluation is pure: it does no I/O and keeps no state.
    """

    def __init__(
        self,
        thresholds: PerformanceThresholds | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._thresholds = thresholds or PerformanceThresholds()
        self._clock = clock

    @property
    def thresholds(self) -> PerformanceThresholds:
        return self._thresholds

    def evaluate(
        self,
        validation: ValidationResult,
        metrics: PerformanceMetrics,
        previous_issues: Mapping[str, HealthIssue] | None = None,
        uptime: int = 0,
    ) -> HealthStatus:
        now = self._clock()
        builder = _IssueBuilder(now, previous_issues or {})

        self._validation_issues(validation, builder)
        penalty = self._performance_issues(metrics, builder)

        score = min(100, max(0, validation.overall_score - penalty))

        if validation.connectivity.connected and score < CRITICAL_SCORE_FLOOR:
            builder.add(
                IssueCategory.FUNCTIONALITY,
                IssueSeverity.CRITICAL,
                "Health Score Critically Low",
                f"Health score {score} is below {CRITICAL_SCORE_FLOOR}",
                "Treat the environment as unusable until the listed issues are fixed",
            )

        return HealthStatus(
            status=status_for_score(score),
            score=score,
            last_checked=now,
            uptime=uptime,
            issues=builder.issues,
        )

    def unknown(
        self,
        error: BaseException | str,
        previous_issues: Mapping[str, HealthIssue] | None = None,
        uptime: int = 0,
    ) -> HealthStatus:
        """Status used when evaluation itself failed."""
        now = self._clock()
        builder = _IssueBuilder(now, previous_issues or {})
        builder.add(
            IssueCategory.FUNCTIONALITY,
            IssueSeverity.CRITICAL,
            "Health Evaluation Failed",
            f"Could not derive health status: {error}",
            "Inspect the monitor logs for the underlying exception",
        )
        return HealthStatus(
            status=HealthState.UNKNOWN,
            score=0,
            last_checked=now,
            uptime=uptime,
            issues=builder.issues,
        )

    # ── Validation dimensions ───────────────────────────────────

    def _validation_issues(self, validation: ValidationResult, builder: _IssueBuilder) -> None:
        connectivity = validation.connectivity
        if not connectivity.connected:
            # Schema, integrity and audit were not attempted; one issue covers them.
            builder.add(
                IssueCategory.CONNECTIVITY,
                IssueSeverity.CRITICAL,
                "Database Connection Failed",
                f"Cannot connect to the database: {connectivity.error or 'unknown error'}",
                "Check database credentials and network connectivity",
            )
            return

        schema = validation.schema_result
        if schema.missing_tables:
            builder.add(
                IssueCategory.DATA,
                IssueSeverity.HIGH,
                "Schema Validation Failed",
                f"Missing tables: {', '.join(schema.missing_tables)}",
                "Run schema synchronization to create the missing tables",
            )
        elif not schema.is_valid:
            builder.add(
                IssueCategory.DATA,
                IssueSeverity.HIGH,
                "Schema Validation Failed",
                "; ".join(schema.errors) or "Schema could not be read",
                "Check schema read permissions for the service role",
            )

        integrity = validation.data_integrity
        if integrity.orphaned_records:
            builder.add(
                IssueCategory.DATA,
                IssueSeverity.HIGH,
                "Orphaned Records Detected",
                f"{integrity.orphaned_records} records reference missing parent rows",
                "Repair or delete child rows whose parent no longer exists",
            )
        if integrity.null_constraint_violations:
            builder.add(
                IssueCategory.DATA,
                IssueSeverity.MEDIUM,
                "Null Constraint Violations",
                f"{integrity.null_constraint_violations} critical fields are NULL",
                "Backfill required fields and add NOT NULL constraints",
            )
        if integrity.errors:
            builder.add(
                IssueCategory.DATA,
                IssueSeverity.MEDIUM,
                "Data Integrity Check Failed",
                "; ".join(integrity.errors),
                "Verify the service role can read the core tables",
            )

        audit = validation.audit_system
        if not audit.is_valid:
            if not audit.audit_tables_present or not audit.audit_triggers_active:
                category, severity = IssueCategory.SECURITY, IssueSeverity.HIGH
            else:
                category, severity = IssueCategory.FUNCTIONALITY, IssueSeverity.MEDIUM
            builder.add(
                category,
                severity,
                "Audit System Issues",
                "; ".join(audit.errors) or "Audit system incomplete",
                "Check audit system configuration and triggers",
            )

    # ── Performance thresholds ──────────────────────────────────

    def _performance_issues(self, metrics: PerformanceMetrics, builder: _IssueBuilder) -> int:
        """Add threshold breach issues and return the total score penalty."""
        limits = self._thresholds
        penalty = 0

        if not metrics.is_sentinel and metrics.response_time_ms > limits.response_time_ms:
            severe = metrics.response_time_ms >= 2 * limits.response_time_ms
            builder.add(
                IssueCategory.PERFORMANCE,
                IssueSeverity.HIGH if severe else IssueSeverity.MEDIUM,
                "Slow Response Time",
                f"Response time {metrics.response_time_ms:.0f}ms exceeds threshold "
                f"{limits.response_time_ms:.0f}ms",
                "Check database performance and optimize queries",
            )
            penalty += RESPONSE_TIME_PENALTY

        if metrics.error_rate > limits.error_rate_pct:
            severe = metrics.error_rate >= min(100.0, 2 * limits.error_rate_pct)
            builder.add(
                IssueCategory.PERFORMANCE,
                IssueSeverity.CRITICAL if severe else IssueSeverity.HIGH,
                "High Error Rate",
                f"Error rate {metrics.error_rate:.1f}% exceeds threshold "
                f"{limits.error_rate_pct:.1f}%",
                "Investigate and fix recurring errors",
            )
            penalty += ERROR_RATE_PENALTY

        if not metrics.is_sentinel and metrics.throughput < limits.throughput_min:
            severe = metrics.throughput < limits.throughput_min / 2
            builder.add(
                IssueCategory.PERFORMANCE,
                IssueSeverity.MEDIUM if severe else IssueSeverity.LOW,
                "Low Throughput",
                f"Throughput {metrics.throughput:.1f}/s is below minimum "
                f"{limits.throughput_min:.1f}/s",
                "Check connection pool saturation and long-running queries",
            )
            penalty += THROUGHPUT_PENALTY

        return penalty


class _IssueBuilder:
    """Collects issues for one evaluation, carrying over first-detected times."""

    def __init__(self, now: float, previous: Mapping[str, HealthIssue]) -> None:
        self._now = now
        self._previous = previous
        self.issues: list[HealthIssue] = []

    def add(
        self,
        category: IssueCategory,
        severity: IssueSeverity,
        title: str,
        description: str,
        recommendation: str,
    ) -> None:
        key = issue_key(category, title)
        prior = self._previous.get(key)
        self.issues.append(HealthIssue(
            id=key,
            severity=severity,
            category=category,
            title=title,
            description=description,
            recommendation=recommendation,
            first_detected=prior.first_detected if prior else self._now,
            last_seen=self._now,
        ))
