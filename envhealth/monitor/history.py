"""HistoryStore — per-environment report history, raw samples and trends."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from envhealth.core.config import TrendConfig
from envhealth.core.types import (
    TREND_METRICS,
    HealthReport,
    HealthState,
    HealthTrend,
    PerformanceMetrics,
    Timeframe,
    TrendDirection,
    TrendPoint,
)
from envhealth.monitor.exceptions import HistoryOrderError, UnknownMetricError

logger = structlog.stdlib.get_logger()

HIGHER_IS_BETTER = TREND_METRICS

_SAMPLE_METRICS = frozenset({"throughput", "response_time_ms", "error_rate"})


def least_squares_slope(values: list[float]) -> float:
    """Slope of the least-squares line through ``(i, values[i])``."""
    n = len(values)
    if n < 2:
        return 0.0
    x_sum = sum(range(n))
    y_sum = sum(values)
    xy_sum = sum(i * v for i, v in enumerate(values))
    x2_sum = sum(i * i for i in range(n))
    denominator = n * x2_sum - x_sum * x_sum
    if denominator == 0:
        return 0.0
    return (n * xy_sum - x_sum * y_sum) / denominator


class HistoryStore:
    """Append-only report history plus raw performance samples.

    Reports for one environment are kept in strictly increasing timestamp
    order; samples are kept in arrival order. Windowed reads use the
    wall clock, so ``1h ⊆ 24h ⊆ 7d ⊆ 30d ⊆ all`` always holds.
    """

    def __init__(
        self,
        trends: TrendConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._trend_config = trends or TrendConfig()
        self._clock = clock
        self._reports: dict[str, list[HealthReport]] = {}
        self._samples: dict[str, list[PerformanceMetrics]] = {}

    @property
    def environment_ids(self) -> list[str]:
        return sorted(set(self._reports) | set(self._samples))

    # ── Reports ─────────────────────────────────────────────────

    def append(self, report: HealthReport) -> None:
        last = self.last_timestamp(report.environment_id)
        if last is not None and report.timestamp <= last:
            raise HistoryOrderError(
                f"Report for {report.environment_id} at {report.timestamp} "
                f"is not after {last}"
            )
        self._reports.setdefault(report.environment_id, []).append(report)

    def last_timestamp(self, environment_id: str) -> float | None:
        reports = self._reports.get(environment_id)
        return reports[-1].timestamp if reports else None

    def get_history(
        self, environment_id: str, timeframe: Timeframe | None = None,
    ) -> list[HealthReport]:
        """Reports inside the window (or all of them), oldest first.

        Returns deep copies; stored history cannot be changed through them.
        """
        reports = self._reports.get(environment_id, [])
        if timeframe is not None:
            cutoff = self._clock() - timeframe.seconds
            reports = [r for r in reports if r.timestamp >= cutoff]
        return [r.model_copy(deep=True) for r in reports]

    def report_count(self, environment_id: str) -> int:
        return len(self._reports.get(environment_id, []))

    # ── Samples ─────────────────────────────────────────────────

    def record_metrics(self, environment_id: str, metrics: PerformanceMetrics) -> None:
        self._samples.setdefault(environment_id, []).append(metrics)

    def get_metrics(
        self, environment_id: str, timeframe: Timeframe | None = None,
    ) -> list[PerformanceMetrics]:
        samples = self._samples.get(environment_id, [])
        if timeframe is None:
            return list(samples)
        cutoff = self._clock() - timeframe.seconds
        return [m for m in samples if m.timestamp >= cutoff]

    # ── Trends ──────────────────────────────────────────────────

    def trend(
        self,
        environment_id: str,
        metric: str,
        timeframe: Timeframe | None = None,
    ) -> HealthTrend:
        """Direction of *metric* over *timeframe*.

        Points are averaged into equal time buckets; the least-squares
        slope of the bucket means, divided by their mean magnitude, is
        compared against the configured tolerance.
        """
        if metric not in HIGHER_IS_BETTER:
            raise UnknownMetricError(metric)
        window = timeframe or self._trend_config.timeframe
        now = self._clock()
        start = now - window.seconds
        points = self._points(environment_id, metric, start)

        means = _bucket_means(points, start, window.seconds, self._trend_config.buckets)
        if len(means) < 2:
            return HealthTrend(metric=metric, timeframe=window, values=points)

        raw_slope = least_squares_slope(means)
        magnitude = sum(abs(v) for v in means) / len(means)
        slope = raw_slope / magnitude if magnitude > 0 else 0.0

        if abs(slope) <= self._trend_config.tolerance:
            direction = TrendDirection.STABLE
        elif (slope > 0) == HIGHER_IS_BETTER[metric]:
            direction = TrendDirection.IMPROVING
        else:
            direction = TrendDirection.DEGRADING

        return HealthTrend(
            metric=metric,
            timeframe=window,
            values=points,
            trend=direction,
            slope=slope,
        )

    def trends(self, environment_id: str) -> list[HealthTrend]:
        """One trend per configured metric over the configured timeframe."""
        return [
            self.trend(environment_id, metric, self._trend_config.timeframe)
            for metric in self._trend_config.metrics
        ]

    def _points(self, environment_id: str, metric: str, start: float) -> list[TrendPoint]:
        if metric in _SAMPLE_METRICS:
            return [
                TrendPoint(timestamp=m.timestamp, value=getattr(m, metric))
                for m in self._samples.get(environment_id, [])
                if m.timestamp >= start and not m.is_sentinel
            ]
        # health_score; reports of unknown status carry no real score.
        return [
            TrendPoint(timestamp=r.timestamp, value=float(r.health_status.score))
            for r in self._reports.get(environment_id, [])
            if r.timestamp >= start and r.health_status.status != HealthState.UNKNOWN
        ]

    # ── Retention ───────────────────────────────────────────────

    def prune(self, reports_cutoff: float, metrics_cutoff: float) -> tuple[int, int]:
        """Drop reports and samples older than their cutoffs.

        Returns (reports_removed, samples_removed).
        """
        reports_removed = _prune(self._reports, reports_cutoff)
        samples_removed = _prune(self._samples, metrics_cutoff)
        if reports_removed or samples_removed:
            logger.info(
                "history_pruned",
                reports_removed=reports_removed,
                samples_removed=samples_removed,
            )
        return reports_removed, samples_removed

    def snapshot(self) -> dict[str, object]:
        return {
            "environments": len(self.environment_ids),
            "reports": sum(len(r) for r in self._reports.values()),
            "samples": sum(len(s) for s in self._samples.values()),
        }


def _bucket_means(
    points: list[TrendPoint], start: float, span: float, buckets: int,
) -> list[float]:
    """Means of the non-empty buckets, in time order."""
    buckets = max(1, buckets)
    width = span / buckets
    sums = [0.0] * buckets
    counts = [0] * buckets
    for point in points:
        index = min(buckets - 1, max(0, int((point.timestamp - start) / width)))
        sums[index] += point.value
        counts[index] += 1
    return [s / c for s, c in zip(sums, counts) if c]


def _prune(store: dict[str, list], cutoff: float) -> int:
    removed = 0
    for env_id in list(store):
        kept = [item for item in store[env_id] if item.timestamp >= cutoff]
        removed += len(store[env_id]) - len(kept)
        if kept:
            store[env_id] = kept
        else:
            del store[env_id]
    return removed
