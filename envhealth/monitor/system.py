"""HealthMonitoringSystem — facade tying validation, evaluation, alerts and history together."""

from __future__ import annotations

import asyncio
import math
import time
from collections import defaultdict
from collections.abc import Callable, Mapping

import structlog

from envhealth.core.config import MonitoringConfig
from envhealth.core.logging import environment_context
from envhealth.core.types import (
    AlertSeverity,
    Environment,
    FunctionalityResult,
    HealthAlert,
    HealthIssue,
    HealthReport,
    HealthState,
    HealthTrend,
    PerformanceMetrics,
    Timeframe,
)
from envhealth.monitor.alerts import AlertManager
from envhealth.monitor.evaluator import HealthEvaluator
from envhealth.monitor.history import HistoryStore
from envhealth.monitor.scheduler import MonitoringScheduler
from envhealth.monitor.transports import NotificationTransport
from envhealth.probes.base import DataProbe, FunctionalitySuite, PerformanceSampler
from envhealth.probes.safety import ProductionSafetyGuard
from envhealth.probes.sampler import ProbeSampler
from envhealth.validation.engine import ValidationEngine, check_environment

logger = structlog.stdlib.get_logger()

SECS_PER_DAY = 86400.0

CHECK_FAILED_TITLE = "Health Check Failed"


class HealthMonitoringSystem:
    """Single entry point for checking and continuously monitoring environments.

    One ``perform_health_check`` call validates the environment, samples
    performance, evaluates health, reconciles alerts and appends a report
    to history. Network I/O happens outside the per-environment lock; the
    state updates for one environment are serialized, so concurrent checks
    of the same environment never interleave their history entries.

    Usage::

        system = HealthMonitoringSystem(config, probe, transports=transports)
        report = await system.perform_health_check(env)
        await system.start_monitoring(env)
        ...
        await system.close()
    """

    def __init__(
        self,
        config: MonitoringConfig | None,
        probe: DataProbe,
        *,
        sampler: PerformanceSampler | None = None,
        guard: ProductionSafetyGuard | None = None,
        transports: Mapping[str, NotificationTransport] | None = None,
        functionality_suite: FunctionalitySuite | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or MonitoringConfig()
        self._clock = clock
        self._guard = guard or ProductionSafetyGuard()
        self._engine = ValidationEngine(probe, guard=self._guard, clock=clock)
        self._sampler = sampler or ProbeSampler(probe)
        self._suite = functionality_suite
        self._evaluator = HealthEvaluator(self._config.performance_thresholds, clock=clock)
        self._alerts = AlertManager(self._config.alerting, transports, clock=clock)
        self._history = HistoryStore(self._config.trends, clock=clock)
        self._scheduler = MonitoringScheduler(
            self.perform_health_check,
            self._config.check_interval_secs,
            on_error=self._on_check_failed,
        )

        self._locks: dict[str, asyncio.Lock] = {}
        self._issues: dict[str, dict[str, HealthIssue]] = {}
        self._uptime: dict[str, int] = defaultdict(int)
        self._check_counts: dict[str, int] = defaultdict(int)

    # ── Properties ──────────────────────────────────────────────

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def engine(self) -> ValidationEngine:
        return self._engine

    @property
    def evaluator(self) -> HealthEvaluator:
        return self._evaluator

    @property
    def alert_manager(self) -> AlertManager:
        return self._alerts

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def scheduler(self) -> MonitoringScheduler:
        return self._scheduler

    # ── Health Checks ───────────────────────────────────────────

    async def perform_health_check(self, env: Environment) -> HealthReport:
        """Run one full check and append its report to history.

        Raises whatever the validation engine raises (invalid environment,
        access denied); every other failure is folded into the report.
        """
        check_environment(env)
        with environment_context(env.id, env.name):
            started = time.perf_counter()
            self._check_counts[env.id] += 1

            validation = await self._engine.validate_environment(env)
            metrics = await self.collect_performance_metrics(env)
            functionality = await self._run_functionality_tests(env)

            lock = self._locks.setdefault(env.id, asyncio.Lock())
            async with lock:
                previous = self._issues.get(env.id, {})
                try:
                    status = self._evaluator.evaluate(validation, metrics, previous)
                except Exception as exc:
                    logger.exception("health_evaluation_failed")
                    status = self._evaluator.unknown(exc, previous)

                if status.status != HealthState.UNKNOWN:
                    self._uptime[env.id] += 1
                status = status.model_copy(update={"uptime": self._uptime[env.id]})
                self._issues[env.id] = {issue.id: issue for issue in status.issues}

                to_dispatch = self._alerts.reconcile(env.id, status.issues)
                self._history.record_metrics(env.id, metrics)

                report = HealthReport(
                    environment_id=env.id,
                    environment_name=env.name,
                    timestamp=self._next_timestamp(env.id),
                    health_status=status,
                    performance_metrics=metrics,
                    validation_result=validation,
                    functionality_result=functionality,
                    trends=self._history.trends(env.id),
                    alerts=self._alerts.active_alerts(env.id),
                )
                self._history.append(report)

            await self._alerts.dispatch(to_dispatch)

            logger.info(
                "health_check_completed",
                status=status.status.value,
                score=status.score,
                issues=len(status.issues),
                new_alerts=len(to_dispatch),
                duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
            )
            return report

    async def collect_performance_metrics(self, env: Environment) -> PerformanceMetrics:
        """Take one sample; a failing sampler yields the sentinel sample."""
        try:
            metrics = await self._sampler.collect(env)
        except Exception:
            logger.exception("performance_sampling_failed", environment_id=env.id)
            return PerformanceMetrics.failed(self._clock())
        if not 0.0 <= metrics.error_rate <= 100.0:
            metrics = metrics.model_copy(
                update={"error_rate": min(100.0, max(0.0, metrics.error_rate))},
            )
        return metrics

    async def _run_functionality_tests(self, env: Environment) -> FunctionalityResult | None:
        settings = self._config.functionality_tests
        if self._suite is None or not settings.enabled or settings.every_n_checks <= 0:
            return None
        if self._check_counts[env.id] % settings.every_n_checks != 0:
            return None
        if not self._guard.is_allowed(env, "functionality_tests"):
            return None
        try:
            result = await self._suite.run(env)
        except Exception:
            logger.exception("functionality_tests_failed", environment_id=env.id)
            return None
        logger.info(
            "functionality_tests_completed",
            environment_id=env.id,
            passed=result.passed_tests,
            failed=result.failed_tests,
        )
        return result

    def _next_timestamp(self, environment_id: str) -> float:
        now = self._clock()
        last = self._history.last_timestamp(environment_id)
        if last is not None and now <= last:
            return math.nextafter(last, math.inf)
        return now

    # ── Continuous Monitoring ───────────────────────────────────

    async def start_monitoring(self, env: Environment) -> None:
        await self._scheduler.start(env)

    async def stop_monitoring(self, environment_id: str, wait: bool = False) -> None:
        await self._scheduler.stop(environment_id, wait=wait)

    async def stop_all_monitoring(self, wait: bool = False) -> None:
        await self._scheduler.stop_all(wait=wait)

    async def _on_check_failed(self, env: Environment, exc: Exception) -> None:
        alert = self._alerts.raise_alert(
            env.id,
            AlertSeverity.ERROR,
            CHECK_FAILED_TITLE,
            f"Scheduled health check failed: {exc}",
        )
        if alert is not None:
            await self._alerts.dispatch([alert])

    # ── Queries ─────────────────────────────────────────────────

    def get_health_history(
        self, environment_id: str, timeframe: Timeframe | str | None = None,
    ) -> list[HealthReport]:
        window = Timeframe(timeframe) if timeframe is not None else None
        return self._history.get_history(environment_id, window)

    def get_health_trend(
        self,
        environment_id: str,
        metric: str,
        timeframe: Timeframe | str | None = None,
    ) -> HealthTrend:
        window = Timeframe(timeframe) if timeframe is not None else None
        return self._history.trend(environment_id, metric, window)

    def get_active_alerts(self, environment_id: str) -> list[HealthAlert]:
        return self._alerts.active_alerts(environment_id)

    def acknowledge_alert(self, environment_id: str, alert_id: str) -> bool:
        return self._alerts.acknowledge(environment_id, alert_id)

    def resolve_alert(self, environment_id: str, alert_id: str) -> bool:
        return self._alerts.resolve(environment_id, alert_id)

    # ── Maintenance ─────────────────────────────────────────────

    def cleanup(self) -> dict[str, int]:
        """Apply retention to reports, samples and resolved alerts.

        Never raises; returns the number of records removed per class.
        """
        retention = self._config.retention
        now = self._clock()
        try:
            reports, samples = self._history.prune(
                reports_cutoff=now - retention.reports_retention_days * SECS_PER_DAY,
                metrics_cutoff=now - retention.metrics_retention_days * SECS_PER_DAY,
            )
            alerts = self._alerts.purge(now - retention.alerts_retention_days * SECS_PER_DAY)
        except Exception:
            logger.exception("cleanup_failed")
            return {}
        removed = {"reports": reports, "samples": samples, "alerts": alerts}
        logger.info("cleanup_completed", **removed)
        return removed

    async def close(self) -> None:
        """Stop all monitors, cancel pending escalations, close transports."""
        await self._scheduler.stop_all(wait=True)
        await self._alerts.close()
        logger.info("health_monitoring_closed")

    def snapshot(self) -> dict[str, object]:
        return {
            "monitored": self._scheduler.monitored,
            "checks": dict(self._check_counts),
            "uptime": dict(self._uptime),
            "scheduler": self._scheduler.snapshot(),
            "alerts": self._alerts.snapshot(),
            "history": self._history.snapshot(),
        }
