"""Exception hierarchy for environment probes and access policy."""

from __future__ import annotations


class ProbeError(Exception):
    """Base exception for all probe errors."""


class ProbeQueryError(ProbeError):
    """A read-only query against the environment failed."""


class EnvironmentAccessDeniedError(ProbeError):
    """The safety guard refused an operation on this environment."""

    def __init__(self, environment_id: str, operation: str, reason: str = "") -> None:
        self.environment_id = environment_id
        self.operation = operation
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Operation '{operation}' denied on environment {environment_id}{detail}",
        )
