"""Environment validation — connectivity, schema, data integrity, audit."""

from envhealth.validation.engine import (
    CORE_TABLES,
    CRITICAL_FIELDS,
    EXPECTED_TABLES,
    ValidationEngine,
    calculate_overall_score,
    check_environment,
)
from envhealth.validation.exceptions import InvalidEnvironmentError, ValidationError

__all__ = [
    "CORE_TABLES",
    "CRITICAL_FIELDS",
    "EXPECTED_TABLES",
    "InvalidEnvironmentError",
    "ValidationEngine",
    "ValidationError",
    "calculate_overall_score",
    "check_environment",
]
