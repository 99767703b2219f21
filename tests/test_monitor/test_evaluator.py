"""Tests for HealthEvaluator — score fusion, issue derivation, carry-over."""

from __future__ import annotations

from envhealth.core.config import PerformanceThresholds
from envhealth.core.types import (
    AuditSystemResult,
    ConnectivityResult,
    DataIntegrityResult,
    HealthState,
    IssueCategory,
    IssueSeverity,
    PerformanceMetrics,
    SchemaResult,
    ValidationResult,
)
from envhealth.monitor.evaluator import HealthEvaluator, status_for_score


# ── Helpers ─────────────────────────────────────────────────────


def _validation(
    score: int = 100,
    connected: bool = True,
    missing: list[str] | None = None,
    orphans: int = 0,
    nulls: int = 0,
    integrity_errors: list[str] | None = None,
    audit_tables: bool = True,
    audit_triggers: bool = True,
    audit_functions: bool = True,
) -> ValidationResult:
    missing = missing or []
    audit_valid = audit_tables and audit_triggers and audit_functions
    integrity_valid = not orphans and not nulls and not integrity_errors
    return ValidationResult(
        connectivity=ConnectivityResult(
            connected=connected,
            response_time_ms=50.0,
            error=None if connected else "Connection refused",
        ),
        schema_result=SchemaResult(
            is_valid=not missing,
            missing_tables=missing,
            errors=[f"Missing tables: {', '.join(missing)}"] if missing else [],
        ),
        data_integrity=DataIntegrityResult(
            is_valid=integrity_valid,
            orphaned_records=orphans,
            null_constraint_violations=nulls,
            errors=integrity_errors or [],
        ),
        audit_system=AuditSystemResult(
            is_valid=audit_valid,
            audit_tables_present=audit_tables,
            audit_triggers_active=audit_triggers,
            audit_functions_working=audit_functions,
            errors=[] if audit_valid else ["Audit functions not found"],
        ),
        overall_score=score,
        is_valid=connected and not missing and integrity_valid and audit_valid,
    )


def _metrics(**kw: float) -> PerformanceMetrics:
    defaults: dict[str, float] = {
        "response_time_ms": 100.0,
        "throughput": 50.0,
        "error_rate": 0.0,
    }
    defaults.update(kw)
    return PerformanceMetrics(**defaults)  # type: ignore[arg-type]


def _titles(status: object) -> list[str]:
    return [i.title for i in status.issues]  # type: ignore[attr-defined]


# ── Score mapping ───────────────────────────────────────────────


class TestStatusForScore:
    def test_boundaries(self) -> None:
        assert status_for_score(100) == HealthState.HEALTHY
        assert status_for_score(80) == HealthState.HEALTHY
        assert status_for_score(79) == HealthState.WARNING
        assert status_for_score(50) == HealthState.WARNING
        assert status_for_score(49) == HealthState.CRITICAL
        assert status_for_score(0) == HealthState.CRITICAL


# ── Evaluation ──────────────────────────────────────────────────


class TestEvaluate:
    def test_healthy_environment(self) -> None:
        evaluator = HealthEvaluator(clock=lambda: 100.0)
        status = evaluator.evaluate(_validation(), _metrics(), uptime=3)
        assert status.status == HealthState.HEALTHY
        assert status.score == 100
        assert status.issues == []
        assert status.last_checked == 100.0
        assert status.uptime == 3

    def test_connection_failure_single_critical_issue(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=25, connected=False), PerformanceMetrics.failed(),
        )
        assert status.status == HealthState.CRITICAL
        connectivity = [i for i in status.issues if i.category == IssueCategory.CONNECTIVITY]
        assert len(connectivity) == 1
        assert connectivity[0].severity == IssueSeverity.CRITICAL
        assert "Connection refused" in connectivity[0].description
        # no schema/integrity/audit issues when nothing could be checked
        assert not any(i.category == IssueCategory.DATA for i in status.issues)

    def test_missing_tables_issue(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=70, missing=["tasks", "messages"]), _metrics(),
        )
        assert "Schema Validation Failed" in _titles(status)
        issue = status.issues[0]
        assert issue.severity == IssueSeverity.HIGH
        assert "tasks" in issue.description

    def test_integrity_issues(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=80, orphans=2, nulls=1), _metrics(),
        )
        assert "Orphaned Records Detected" in _titles(status)
        assert "Null Constraint Violations" in _titles(status)

    def test_audit_missing_triggers_is_security(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=87, audit_triggers=False), _metrics(),
        )
        [issue] = status.issues
        assert issue.category == IssueCategory.SECURITY
        assert issue.severity == IssueSeverity.HIGH

    def test_audit_missing_functions_is_functionality(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=94, audit_functions=False), _metrics(),
        )
        [issue] = status.issues
        assert issue.category == IssueCategory.FUNCTIONALITY
        assert issue.severity == IssueSeverity.MEDIUM

    def test_one_issue_per_failing_check(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=40, missing=["a"], orphans=1, nulls=1, audit_tables=False),
            _metrics(response_time_ms=5000, error_rate=50, throughput=1),
        )
        assert len(status.issues) == len({i.id for i in status.issues})


class TestPerformanceThresholds:
    def test_slow_response_penalised(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), _metrics(response_time_ms=1500))
        assert status.score == 85
        [issue] = status.issues
        assert issue.title == "Slow Response Time"
        assert issue.severity == IssueSeverity.MEDIUM

    def test_very_slow_response_high(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), _metrics(response_time_ms=2500))
        assert status.issues[0].severity == IssueSeverity.HIGH

    def test_high_error_rate(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), _metrics(error_rate=8.0))
        assert status.score == 75
        assert status.status == HealthState.WARNING
        assert status.issues[0].severity == IssueSeverity.HIGH

    def test_error_rate_double_threshold_critical(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), _metrics(error_rate=12.0))
        assert status.issues[0].severity == IssueSeverity.CRITICAL

    def test_low_throughput(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), _metrics(throughput=6.0))
        assert status.score == 90
        assert status.issues[0].title == "Low Throughput"
        assert status.issues[0].severity == IssueSeverity.LOW

    def test_custom_thresholds(self) -> None:
        evaluator = HealthEvaluator(PerformanceThresholds(response_time_ms=50))
        status = evaluator.evaluate(_validation(), _metrics(response_time_ms=80))
        assert "Slow Response Time" in _titles(status)

    def test_sentinel_sample_only_counts_error_rate(self) -> None:
        status = HealthEvaluator().evaluate(_validation(), PerformanceMetrics.failed())
        assert _titles(status) == ["High Error Rate"]
        assert status.score == 75

    def test_score_floored_at_zero(self) -> None:
        status = HealthEvaluator().evaluate(
            _validation(score=20),
            _metrics(response_time_ms=9000, error_rate=90, throughput=0.1),
        )
        assert status.score == 0
        assert "Health Score Critically Low" in _titles(status)


class TestCarryOver:
    def test_first_detected_preserved(self) -> None:
        now = [100.0]
        evaluator = HealthEvaluator(clock=lambda: now[0])
        first = evaluator.evaluate(_validation(), _metrics(error_rate=8.0))
        now[0] = 160.0
        previous = {i.id: i for i in first.issues}
        second = evaluator.evaluate(_validation(), _metrics(error_rate=9.0), previous)
        [issue] = second.issues
        assert issue.first_detected == 100.0
        assert issue.last_seen == 160.0


class TestUnknown:
    def test_unknown_status(self) -> None:
        status = HealthEvaluator().unknown(RuntimeError("boom"), uptime=4)
        assert status.status == HealthState.UNKNOWN
        assert status.score == 0
        assert status.uptime == 4
        assert "boom" in status.issues[0].description
