"""ProbeSampler — PerformanceSampler built on top of a DataProbe."""

from __future__ import annotations

import time
from collections import defaultdict, deque

import structlog

from envhealth.core.types import Environment, PerformanceMetrics
from envhealth.probes.base import DataProbe, PerformanceSampler

logger = structlog.stdlib.get_logger()


class ProbeSampler(PerformanceSampler):
    """Samples performance by timing the probe's cheap read.

    - ``response_time_ms`` is the wall time of one ``ping``.
    - ``throughput`` is the request rate that latency implies (1000 / ms).
    - ``error_rate`` is the failure percentage over the last
      *error_window* pings for that environment.
    - Connection statistics come from ``DataProbe.db_stats`` when available.

    A failed ping yields the ``PerformanceMetrics.failed()`` sentinel.
    """

    def __init__(self, probe: DataProbe, error_window: int = 20) -> None:
        self._probe = probe
        self._outcomes: dict[str, deque[bool]] = defaultdict(
            lambda: deque(maxlen=error_window),
        )

    def error_rate(self, environment_id: str) -> float:
        """Failure percentage over the recorded window (0 when empty)."""
        window = self._outcomes.get(environment_id)
        if not window:
            return 0.0
        failures = sum(1 for ok in window if not ok)
        return failures / len(window) * 100.0

    async def collect(self, env: Environment) -> PerformanceMetrics:
        started = time.perf_counter()
        try:
            await self._probe.ping(env)
        except Exception as exc:
            self._outcomes[env.id].append(False)
            logger.warning(
                "performance_ping_failed",
                environment_id=env.id,
                error=str(exc),
            )
            return PerformanceMetrics.failed()
        response_time_ms = (time.perf_counter() - started) * 1000.0
        self._outcomes[env.id].append(True)

        connection_count = 0
        active_queries = 0
        try:
            stats = await self._probe.db_stats(env)
            connection_count = int(stats.get("connection_count", 0))
            active_queries = int(stats.get("active_queries", 0))
        except Exception as exc:
            logger.debug(
                "db_stats_unavailable",
                environment_id=env.id,
                error=str(exc),
            )

        throughput = 1000.0 / response_time_ms if response_time_ms > 0 else 0.0
        return PerformanceMetrics(
            response_time_ms=response_time_ms,
            throughput=throughput,
            error_rate=self.error_rate(env.id),
            connection_count=connection_count,
            active_queries=active_queries,
        )
