"""MonitoringScheduler — one periodic check loop per environment."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from envhealth.core.types import Environment, MonitorState

logger = structlog.stdlib.get_logger()

CheckFn = Callable[[Environment], Awaitable[Any]]
ErrorFn = Callable[[Environment, Exception], Any]


@dataclass
class _Monitor:
    environment: Environment
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None
    retired: list[asyncio.Task[None]] = field(default_factory=list)
    tick_count: int = 0
    error_count: int = 0
    last_tick_at: float = 0.0


class MonitoringScheduler:
    """Runs ``check_fn(env)`` every ``interval_secs`` per environment.

    Each environment has at most one loop. Stopping sets the loop's
    cancellation event: a sleeping loop wakes and exits at once, a running
    check is allowed to finish. A re-armed loop's predecessor is kept until
    it exits, so ``stop(wait=True)`` waits for both. Exceptions from a check
    are logged, handed to ``on_error`` and never end the loop.

    Usage::

        scheduler = MonitoringScheduler(system.perform_health_check, 60.0)
        await scheduler.start(env)
        ...
        await scheduler.stop_all(wait=True)
    """

    def __init__(
        self,
        check_fn: CheckFn,
        interval_secs: float,
        on_error: ErrorFn | None = None,
        run_immediately: bool = False,
    ) -> None:
        self._check_fn = check_fn
        self._interval = interval_secs
        self._on_error = on_error
        self._run_immediately = run_immediately
        self._monitors: dict[str, _Monitor] = {}

    @property
    def interval_secs(self) -> float:
        return self._interval

    @property
    def monitored(self) -> list[str]:
        """Ids of environments with a running loop."""
        return [
            env_id for env_id in self._monitors
            if self.state(env_id) == MonitorState.RUNNING
        ]

    def state(self, environment_id: str) -> MonitorState:
        monitor = self._monitors.get(environment_id)
        if monitor is None or monitor.stop_event.is_set():
            return MonitorState.STOPPED
        if monitor.task is None or monitor.task.done():
            return MonitorState.STOPPED
        return MonitorState.RUNNING

    def tick_count(self, environment_id: str) -> int:
        monitor = self._monitors.get(environment_id)
        return monitor.tick_count if monitor else 0

    def error_count(self, environment_id: str) -> int:
        monitor = self._monitors.get(environment_id)
        return monitor.error_count if monitor else 0

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self, environment: Environment) -> None:
        """Start (or re-arm) the loop for *environment*."""
        previous = self._monitors.get(environment.id)
        if previous is not None:
            previous.stop_event.set()
            logger.info("monitor_rearmed", environment_id=environment.id)

        monitor = _Monitor(environment=environment)
        if previous is not None:
            monitor.tick_count = previous.tick_count
            monitor.error_count = previous.error_count
            monitor.retired = [
                t for t in (previous.task, *previous.retired)
                if t is not None and not t.done()
            ]
        monitor.task = asyncio.create_task(self._run(monitor))
        self._monitors[environment.id] = monitor
        self._prune()
        logger.info(
            "monitor_started",
            environment_id=environment.id,
            interval_secs=self._interval,
        )

    async def stop(self, environment_id: str, wait: bool = False) -> None:
        """Stop the loop for *environment_id*. Unknown ids are ignored."""
        monitor = self._monitors.get(environment_id)
        if monitor is None:
            return
        monitor.stop_event.set()
        if wait:
            tasks = [t for t in (monitor.task, *monitor.retired) if t is not None]
            await asyncio.gather(*tasks, return_exceptions=True)
            monitor.retired.clear()
        logger.info(
            "monitor_stopped",
            environment_id=environment_id,
            tick_count=monitor.tick_count,
        )

    async def stop_all(self, wait: bool = False) -> None:
        for environment_id in list(self._monitors):
            await self.stop(environment_id, wait=wait)

    def _prune(self) -> None:
        """Forget stopped monitors whose loops have exited."""
        for env_id, monitor in list(self._monitors.items()):
            if not monitor.stop_event.is_set():
                continue
            tasks = [t for t in (monitor.task, *monitor.retired) if t is not None]
            if all(t.done() for t in tasks):
                del self._monitors[env_id]

    # ── Loop ────────────────────────────────────────────────────

    async def _run(self, monitor: _Monitor) -> None:
        stop = monitor.stop_event
        if not self._run_immediately and await self._sleep(stop):
            return
        while not stop.is_set():
            await self._tick(monitor)
            if await self._sleep(stop):
                return

    async def _sleep(self, stop: asyncio.Event) -> bool:
        """Wait one interval. Returns True if stopped meanwhile."""
        try:
            await asyncio.wait_for(stop.wait(), timeout=self._interval)
        except TimeoutError:
            return stop.is_set()
        return True

    async def _tick(self, monitor: _Monitor) -> None:
        env = monitor.environment
        monitor.last_tick_at = time.time()
        try:
            await self._check_fn(env)
        except Exception as exc:
            monitor.error_count += 1
            logger.exception("monitor_tick_error", environment_id=env.id)
            if self._on_error is not None:
                await self._report_error(env, exc)
        finally:
            monitor.tick_count += 1

    async def _report_error(self, env: Environment, exc: Exception) -> None:
        try:
            result = self._on_error(env, exc)  # type: ignore[misc]
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("monitor_error_callback_failed", environment_id=env.id)

    def snapshot(self) -> dict[str, object]:
        return {
            "interval_secs": self._interval,
            "environments": {
                env_id: {
                    "state": self.state(env_id).value,
                    "tick_count": m.tick_count,
                    "error_count": m.error_count,
                    "last_tick_at": m.last_tick_at,
                }
                for env_id, m in self._monitors.items()
            },
        }
