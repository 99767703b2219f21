"""ValidationEngine — connectivity, schema, data integrity and audit checks.

Every check converts probe failures into a structured result carrying its
own ``errors``/``warnings`` list. The engine raises only for a malformed
environment or when the safety guard denies access.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from envhealth.core.types import (
    AuditSystemResult,
    ConnectivityResult,
    DataIntegrityResult,
    Environment,
    SchemaResult,
    ValidationResult,
)
from envhealth.probes.base import DataProbe
from envhealth.probes.safety import ProductionSafetyGuard
from envhealth.validation.exceptions import InvalidEnvironmentError

logger = structlog.stdlib.get_logger()

EXPECTED_TABLES: tuple[str, ...] = (
    # Identity
    "users", "profiles", "teams", "team_members",
    # Property
    "lofts", "loft_photos", "owners",
    # Reservations
    "reservations", "availability_calendar",
    # Financial
    "transactions", "transaction_reference_amounts",
    # Tasks
    "tasks", "task_assignments",
    # Messaging
    "notifications", "notification_preferences",
    "conversations", "conversation_participants", "messages",
    # Audit
    "audit_logs", "audit_user_context",
    # System
    "payment_methods", "currencies", "zone_areas",
)

CORE_TABLES: tuple[str, ...] = ("users", "lofts", "reservations", "transactions", "tasks")

# (child table, reference column, parent table)
ORPHAN_CHECKS: tuple[tuple[str, str, str], ...] = (
    ("reservations", "loft_id", "lofts"),
)

FOREIGN_KEY_CHECKS: tuple[tuple[str, str, str], ...] = (
    ("tasks", "assigned_to", "users"),
    ("transactions", "loft_id", "lofts"),
    ("messages", "conversation_id", "conversations"),
)

CRITICAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("users", "email"),
    ("lofts", "name"),
    ("reservations", "loft_id"),
    ("transactions", "amount"),
)

AUDIT_LOG_WINDOW_SECS = 24 * 60 * 60

CONNECTION_FAILED = "Database connection failed"


def calculate_overall_score(
    connectivity: ConnectivityResult,
    schema: SchemaResult,
    integrity: DataIntegrityResult,
    audit: AuditSystemResult,
) -> int:
    """Weighted 0–100 score across the four validation dimensions.

    Connectivity 25 (+5 under 1s, +5 more under 500ms), schema 30,
    data integrity 25, audit 20; failing dimensions earn partial credit.
    """
    score = 0

    if connectivity.connected:
        score += 25
        if connectivity.response_time_ms < 1000:
            score += 5
        if connectivity.response_time_ms < 500:
            score += 5

    if schema.is_valid:
        score += 30
    else:
        expected = len(schema.expected_tables)
        if expected:
            # extra tables count toward tables_found; the share is capped at its weight
            score += min(30, math.floor(schema.tables_found / expected * 30))

    if integrity.is_valid:
        score += 25
    else:
        if integrity.orphaned_records == 0:
            score += 8
        if integrity.null_constraint_violations == 0:
            score += 8
        if integrity.foreign_key_violations == 0:
            score += 9

    if audit.is_valid:
        score += 20
    else:
        if audit.audit_tables_present:
            score += 7
        if audit.audit_triggers_active:
            score += 7
        if audit.audit_functions_working:
            score += 6

    return min(100, max(0, score))


class ValidationEngine:
    """Runs the four validation checks against an environment.

    Usage::

        engine = ValidationEngine(probe)
        result = await engine.validate_environment(env)
        if not result.is_valid:
            ...

    The engine keeps no per-call state, so concurrent validations of the
    same environment are independent.
    """

    def __init__(
        self,
        probe: DataProbe,
        guard: ProductionSafetyGuard | None = None,
        expected_tables: Sequence[str] = EXPECTED_TABLES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._probe = probe
        self._guard = guard or ProductionSafetyGuard()
        self._expected_tables: list[str] = list(expected_tables)
        self._clock = clock

    @property
    def expected_tables(self) -> list[str]:
        return list(self._expected_tables)

    async def validate_environment(self, env: Environment) -> ValidationResult:
        """Validate *env* across all dimensions and compute the overall score."""
        check_environment(env)
        self._guard.check(env, "validation")

        connectivity = await self.validate_database_connectivity(env)
        if connectivity.connected:
            schema, integrity, audit = await asyncio.gather(
                self.validate_schema(env),
                self.validate_data_integrity(env),
                self.validate_audit_system(env),
            )
        else:
            schema = self._empty_schema_result()
            integrity = _empty_integrity_result()
            audit = _empty_audit_result()

        overall_score = calculate_overall_score(connectivity, schema, integrity, audit)
        is_valid = (
            connectivity.connected
            and schema.is_valid
            and integrity.is_valid
            and audit.is_valid
        )

        logger.info(
            "environment_validated",
            environment_id=env.id,
            is_valid=is_valid,
            overall_score=overall_score,
            connected=connectivity.connected,
            response_time_ms=round(connectivity.response_time_ms, 1),
        )

        return ValidationResult(
            connectivity=connectivity,
            schema_result=schema,
            data_integrity=integrity,
            audit_system=audit,
            overall_score=overall_score,
            is_valid=is_valid,
            timestamp=self._clock(),
        )

    # ── Connectivity ────────────────────────────────────────────

    async def validate_database_connectivity(self, env: Environment) -> ConnectivityResult:
        """Issue one cheap read and time it."""
        started = time.perf_counter()
        try:
            await self._probe.ping(env)
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000.0
            logger.warning(
                "connectivity_check_failed",
                environment_id=env.id,
                error=str(exc),
                response_time_ms=round(elapsed, 1),
            )
            return ConnectivityResult(
                connected=False,
                response_time_ms=elapsed,
                error=str(exc) or "Unknown connection error",
            )
        elapsed = (time.perf_counter() - started) * 1000.0

        version: str | None = None
        try:
            version = await self._probe.server_version(env)
        except Exception as exc:
            # Connection works; the version lookup is optional.
            logger.debug("server_version_unavailable", environment_id=env.id, error=str(exc))

        return ConnectivityResult(connected=True, response_time_ms=elapsed, version=version)

    # ── Schema ──────────────────────────────────────────────────

    async def validate_schema(self, env: Environment) -> SchemaResult:
        """Compare live tables against the expected table list."""
        try:
            found_tables = await self._probe.list_tables(env)
        except Exception as exc:
            logger.warning("schema_query_failed", environment_id=env.id, error=str(exc))
            return SchemaResult(
                is_valid=False,
                expected_tables=self.expected_tables,
                missing_tables=self.expected_tables,
                errors=[f"Failed to query schema: {exc}"],
            )

        warnings: list[str] = []
        functions = await self._list_or_warn(self._probe.list_functions, env, "functions", warnings)
        triggers = await self._list_or_warn(self._probe.list_triggers, env, "triggers", warnings)
        policies = await self._list_or_warn(self._probe.list_policies, env, "policies", warnings)

        found = set(found_tables)
        expected = set(self._expected_tables)
        missing = [t for t in self._expected_tables if t not in found]
        extra = sorted(found - expected)

        errors: list[str] = []
        if missing:
            errors.append(f"Missing tables: {', '.join(missing)}")

        return SchemaResult(
            is_valid=not missing,
            tables_found=len(found),
            expected_tables=self.expected_tables,
            missing_tables=missing,
            extra_tables=extra,
            functions_found=len(functions),
            triggers_found=len(triggers),
            policies_found=len(policies),
            errors=errors,
            warnings=warnings,
        )

    async def _list_or_warn(
        self,
        fetch: Callable[[Environment], Awaitable[list[str]]],
        env: Environment,
        label: str,
        warnings: list[str],
    ) -> list[str]:
        try:
            return list(await fetch(env))
        except Exception as exc:
            warnings.append(f"Could not list {label}: {exc}")
            return []

    # ── Data integrity ──────────────────────────────────────────

    async def validate_data_integrity(self, env: Environment) -> DataIntegrityResult:
        """Count records and look for orphans, duplicates and null violations.

        A failing probe for one table becomes a warning; the check still
        returns whatever it could count.
        """
        errors: list[str] = []
        warnings: list[str] = []

        total_records = 0
        tables_counted = 0
        for table in CORE_TABLES:
            try:
                total_records += await self._probe.count_records(env, table)
                tables_counted += 1
            except Exception as exc:
                warnings.append(f"Could not count records in {table}: {exc}")
        if tables_counted == 0:
            errors.append("Data integrity validation error: no core table could be read")

        orphaned_records = 0
        for table, column, parent in ORPHAN_CHECKS:
            try:
                orphaned_records += await self._probe.count_orphans(env, table, column, parent)
            except Exception as exc:
                warnings.append(f"Could not check orphaned {table}: {exc}")

        foreign_key_violations = 0
        for table, column, parent in FOREIGN_KEY_CHECKS:
            try:
                foreign_key_violations += await self._probe.count_orphans(
                    env, table, column, parent,
                )
            except Exception as exc:
                warnings.append(f"Could not check references {table}.{column}: {exc}")

        duplicate_records = 0
        try:
            duplicate_records = await self._probe.count_duplicate_emails(env)
        except Exception as exc:
            warnings.append(f"Could not check duplicate users: {exc}")

        null_violations = 0
        for table, field in CRITICAL_FIELDS:
            try:
                null_violations += await self._probe.count_nulls(env, table, field)
            except Exception as exc:
                warnings.append(f"Could not check null values in {table}.{field}: {exc}")

        if warnings:
            logger.info(
                "data_integrity_partial",
                environment_id=env.id,
                warnings=len(warnings),
            )

        return DataIntegrityResult(
            is_valid=not errors and orphaned_records == 0 and null_violations == 0,
            total_records=total_records,
            orphaned_records=orphaned_records,
            duplicate_records=duplicate_records,
            null_constraint_violations=null_violations,
            foreign_key_violations=foreign_key_violations,
            errors=errors,
            warnings=warnings,
        )

    # ── Audit system ────────────────────────────────────────────

    async def validate_audit_system(self, env: Environment) -> AuditSystemResult:
        """Check audit tables, triggers, functions and recent audit activity."""
        errors: list[str] = []

        try:
            tables = await self._probe.list_tables(env)
            tables_present = any(t.startswith("audit") for t in tables)
        except Exception as exc:
            logger.debug("audit_tables_query_failed", environment_id=env.id, error=str(exc))
            tables_present = False
        if not tables_present:
            errors.append("Audit tables not found")

        try:
            triggers = await self._probe.list_triggers(env)
            triggers_active = any("audit" in t for t in triggers)
        except Exception as exc:
            logger.debug("audit_triggers_query_failed", environment_id=env.id, error=str(exc))
            triggers_active = False
        if not triggers_active:
            errors.append("Audit triggers not found or inactive")

        try:
            functions = await self._probe.list_functions(env)
            functions_working = any("audit" in f for f in functions)
        except Exception as exc:
            logger.debug("audit_functions_query_failed", environment_id=env.id, error=str(exc))
            functions_working = False
        if not functions_working:
            errors.append("Audit functions not found")

        logs_recent = False
        if tables_present:
            since = self._clock() - AUDIT_LOG_WINDOW_SECS
            try:
                logs_recent = await self._probe.count_recent_audit_logs(env, since) > 0
            except Exception as exc:
                logger.debug("audit_logs_query_failed", environment_id=env.id, error=str(exc))
                errors.append("Could not check recent audit logs")

        return AuditSystemResult(
            is_valid=tables_present and triggers_active and functions_working,
            audit_tables_present=tables_present,
            audit_triggers_active=triggers_active,
            audit_functions_working=functions_working,
            audit_logs_recent=logs_recent,
            errors=errors,
        )

    # ── Empty results (connection failed) ───────────────────────

    def _empty_schema_result(self) -> SchemaResult:
        return SchemaResult(
            is_valid=False,
            expected_tables=self.expected_tables,
            missing_tables=self.expected_tables,
            errors=[CONNECTION_FAILED],
        )


def _empty_integrity_result() -> DataIntegrityResult:
    return DataIntegrityResult(is_valid=False, errors=[CONNECTION_FAILED])


def _empty_audit_result() -> AuditSystemResult:
    return AuditSystemResult(is_valid=False, errors=[CONNECTION_FAILED])


def check_environment(env: object) -> None:
    """Raise InvalidEnvironmentError unless *env* is a usable Environment."""
    if not isinstance(env, Environment):
        raise InvalidEnvironmentError(
            f"Expected an Environment, got {type(env).__name__}",
        )
    if not env.id.strip():
        raise InvalidEnvironmentError("Environment id is empty")
    if not env.name.strip():
        raise InvalidEnvironmentError(f"Environment {env.id} has no name")
