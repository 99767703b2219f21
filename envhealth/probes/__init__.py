"""Collaborator interfaces and the read-only safety guard."""

from envhealth.probes.base import DataProbe, FunctionalitySuite, PerformanceSampler
from envhealth.probes.exceptions import (
    EnvironmentAccessDeniedError,
    ProbeError,
    ProbeQueryError,
)
from envhealth.probes.safety import READ_ONLY_OPERATIONS, ProductionSafetyGuard
from envhealth.probes.sampler import ProbeSampler

__all__ = [
    "READ_ONLY_OPERATIONS",
    "DataProbe",
    "EnvironmentAccessDeniedError",
    "FunctionalitySuite",
    "PerformanceSampler",
    "ProbeError",
    "ProbeQueryError",
    "ProbeSampler",
    "ProductionSafetyGuard",
]
