"""ProductionSafetyGuard — decides which operations may touch an environment."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from envhealth.core.types import Environment
from envhealth.probes.exceptions import EnvironmentAccessDeniedError

logger = structlog.stdlib.get_logger()

READ_ONLY_OPERATIONS: frozenset[str] = frozenset({
    "validation",
    "health_check",
    "performance_sampling",
})


class ProductionSafetyGuard:
    """Gate consulted before any operation runs against an environment.

    - Read-only operations are allowed everywhere unless the environment is
      explicitly blocked.
    - Anything else (e.g. ``functionality_tests``, which writes test rows)
      is refused on production environments and on environments that do
      not allow writes.

    Usage::

        guard = ProductionSafetyGuard(blocked=["prod-eu"])
        guard.check(env, "validation")  # raises EnvironmentAccessDeniedError
    """

    def __init__(self, blocked: Iterable[str] = ()) -> None:
        self._blocked: set[str] = set(blocked)

    @property
    def blocked(self) -> set[str]:
        return set(self._blocked)

    def block(self, environment_id: str) -> None:
        """Refuse every operation on *environment_id* from now on."""
        self._blocked.add(environment_id)

    def unblock(self, environment_id: str) -> None:
        self._blocked.discard(environment_id)

    def is_allowed(self, env: Environment, operation: str) -> bool:
        try:
            self.check(env, operation)
        except EnvironmentAccessDeniedError:
            return False
        return True

    def check(self, env: Environment, operation: str) -> None:
        """Raise ``EnvironmentAccessDeniedError`` if *operation* is disallowed."""
        if env.id in self._blocked:
            self._deny(env, operation, "environment is blocked")

        if operation in READ_ONLY_OPERATIONS:
            return

        if env.is_production:
            self._deny(env, operation, "mutating operation on production")
        if not env.allow_writes:
            self._deny(env, operation, "environment does not allow writes")

    def _deny(self, env: Environment, operation: str, reason: str) -> None:
        logger.warning(
            "environment_access_denied",
            environment_id=env.id,
            operation=operation,
            reason=reason,
        )
        raise EnvironmentAccessDeniedError(env.id, operation, reason)
