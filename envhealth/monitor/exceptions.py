"""Health monitoring exceptions."""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for health monitoring errors."""


class HistoryOrderError(MonitorError):
    """A report would break the strictly increasing timestamp order."""


class UnknownMetricError(MonitorError, ValueError):
    """Trend requested for a metric the history store does not track."""

    def __init__(self, metric: str) -> None:
        self.metric = metric
        super().__init__(f"Unknown trend metric: {metric}")
