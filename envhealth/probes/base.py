"""Collaborator interfaces — read-only data probe, sampler, functionality suite.

Concrete implementations live outside this package (they talk to a hosted
database/API). Each method may raise; callers in this package convert
failures into structured results.
"""

from __future__ import annotations

import abc

from envhealth.core.types import Environment, FunctionalityResult, PerformanceMetrics


class DataProbe(abc.ABC):
    """Read-only queries against a target environment.

    Timeouts are the implementation's responsibility: a hung query must
    raise rather than block forever.
    """

    @abc.abstractmethod
    async def ping(self, env: Environment) -> None:
        """Issue one cheap read. Raises if the environment is unreachable."""

    async def server_version(self, env: Environment) -> str | None:
        """Database server version string, if the backend exposes it."""
        return None

    @abc.abstractmethod
    async def list_tables(self, env: Environment) -> list[str]:
        """Names of the tables in the public schema."""

    @abc.abstractmethod
    async def list_functions(self, env: Environment) -> list[str]:
        """Names of the routines in the public schema."""

    @abc.abstractmethod
    async def list_triggers(self, env: Environment) -> list[str]:
        """Names of the triggers in the public schema."""

    @abc.abstractmethod
    async def list_policies(self, env: Environment) -> list[str]:
        """Names of the row-level-security policies."""

    @abc.abstractmethod
    async def count_records(self, env: Environment, table: str) -> int:
        """Exact row count of *table*."""

    @abc.abstractmethod
    async def count_orphans(
        self, env: Environment, table: str, column: str, parent_table: str,
    ) -> int:
        """Rows of *table* whose *column* references no row in *parent_table*."""

    @abc.abstractmethod
    async def count_duplicate_emails(self, env: Environment) -> int:
        """Number of user identities sharing an email address."""

    @abc.abstractmethod
    async def count_nulls(self, env: Environment, table: str, field: str) -> int:
        """Rows of *table* where *field* is NULL."""

    @abc.abstractmethod
    async def count_recent_audit_logs(self, env: Environment, since: float) -> int:
        """Audit log rows created at or after *since* (POSIX seconds)."""

    async def db_stats(self, env: Environment) -> dict[str, int]:
        """Connection statistics (``connection_count``, ``active_queries``)."""
        return {}


class PerformanceSampler(abc.ABC):
    """Measures responsiveness of an environment.

    Implementations should return ``PerformanceMetrics.failed()`` instead of
    raising; the monitor converts any exception to that sentinel anyway.
    """

    @abc.abstractmethod
    async def collect(self, env: Environment) -> PerformanceMetrics:
        """Take one performance sample."""


class FunctionalitySuite(abc.ABC):
    """End-to-end functionality tests (auth, CRUD, realtime, audit)."""

    @abc.abstractmethod
    async def run(self, env: Environment) -> FunctionalityResult:
        """Run the full suite against a non-production environment."""
