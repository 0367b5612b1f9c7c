"""In-memory implementation of ViolationStorage for testing and embedding."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from codewatch.kernel.ports.storage import StoreResult, ViolationStatus

if TYPE_CHECKING:
    from codewatch.kernel.domain.rule_schedule import RuleKey, RuleSchedule
    from codewatch.kernel.domain.violation import Violation

__all__ = [
    "InMemoryViolationStorage",
    "PerformanceMetric",
    "RuleCheckRecord",
    "RuleCheckStatus",
    "StoredViolation",
]

# 30 days
DEFAULT_MAX_HISTORY_AGE_SECONDS = 30 * 24 * 3600.0


class RuleCheckStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class StoredViolation:
    """A violation row plus its lifecycle bookkeeping."""

    hash: str
    violation: Violation
    status: ViolationStatus
    first_seen_at: float
    last_seen_at: float


@dataclass(slots=True)
class RuleCheckRecord:
    """History row for one rule check."""

    check_id: int
    rule: str
    engine: str
    status: RuleCheckStatus
    started_at: float
    completed_at: float | None = None
    violations_found: int = 0
    execution_time_ms: float = 0.0
    files_checked: int = 0
    files_with_violations: int = 0
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PerformanceMetric:
    name: str
    value: float
    unit: str
    note: str | None
    recorded_at: float


class InMemoryViolationStorage:
    """Dictionary-backed violation, schedule and rule-check store.

    Features:
    - Upsert by identity hash with insert/update accounting
    - Resolved violations reactivate when seen again
    - Due-rule selection by priority then due time
    - Rule-check history and performance metrics
    - Age-based cleanup
    - Delay simulation

    Parameters
    ----------
    delay_seconds : float
        Simulated latency for every operation. Default: 0.0.
    max_history_age_seconds : float
        Age after which metrics, finished checks and resolved violations are
        removed by ``acleanup_old_data``. Default: 30 days.
    clock : Callable[[], float]
        Source of epoch seconds; replaceable in tests.
    """

    def __init__(
        self,
        delay_seconds: float = 0.0,
        max_history_age_seconds: float = DEFAULT_MAX_HISTORY_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.delay_seconds = delay_seconds
        self.max_history_age_seconds = max_history_age_seconds
        self._clock = clock

        self.violations: dict[str, StoredViolation] = {}
        self.schedules: dict[RuleKey, RuleSchedule] = {}
        self.rule_checks: dict[int, RuleCheckRecord] = {}
        self.metrics: list[PerformanceMetric] = []
        self._next_check_id = 1

    async def _simulate_delay(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    async def astore_violations(self, violations: Mapping[str, Violation]) -> StoreResult:
        """Upsert violations keyed by identity hash.

        Returns
        -------
        StoreResult
            New hashes count as inserted; known hashes (active or
            resolved) count as updated and become active.
        """
        await self._simulate_delay()
        now = self._clock()
        inserted = updated = 0
        for digest, violation in violations.items():
            existing = self.violations.get(digest)
            if existing is None:
                self.violations[digest] = StoredViolation(
                    hash=digest,
                    violation=violation,
                    status=ViolationStatus.ACTIVE,
                    first_seen_at=now,
                    last_seen_at=now,
                )
                inserted += 1
                continue
            existing.violation = violation
            existing.status = ViolationStatus.ACTIVE
            existing.last_seen_at = now
            updated += 1
        return StoreResult(inserted=inserted, updated=updated)

    async def aget_violations(
        self,
        status: ViolationStatus | None = ViolationStatus.ACTIVE,
        file: str | None = None,
        source: str | None = None,
    ) -> list[Violation]:
        await self._simulate_delay()
        return [
            row.violation
            for row in self.violations.values()
            if (status is None or row.status == status)
            and (file is None or row.violation.file == file)
            and (source is None or row.violation.source == source)
        ]

    async def aresolve_violations(self, hashes: Sequence[str]) -> int:
        """Mark active violations resolved; unknown or resolved hashes are skipped."""
        await self._simulate_delay()
        now = self._clock()
        changed = 0
        for digest in hashes:
            row = self.violations.get(digest)
            if row is None or row.status != ViolationStatus.ACTIVE:
                continue
            row.status = ViolationStatus.RESOLVED
            row.last_seen_at = now
            changed += 1
        return changed

    def get_active_hashes(self) -> set[str]:
        return {h for h, row in self.violations.items() if row.status == ViolationStatus.ACTIVE}

    # ------------------------------------------------------------------
    # Rule schedules and checks
    # ------------------------------------------------------------------

    async def aupsert_rule_schedule(self, schedule: RuleSchedule) -> None:
        """Create or replace a schedule, keeping its check timestamps."""
        await self._simulate_delay()
        existing = self.schedules.get(schedule.key)
        if existing is not None:
            schedule = replace(
                schedule,
                last_checked_at=existing.last_checked_at,
                next_check_at=existing.next_check_at,
            )
        self.schedules[schedule.key] = schedule

    async def aget_next_rules_to_check(self, limit: int) -> list[RuleSchedule]:
        """Enabled schedules that are due, by priority then due time.

        Never-checked schedules are due immediately and sort first within
        their priority.
        """
        await self._simulate_delay()
        if limit <= 0:
            return []
        now = self._clock()
        due = [
            s
            for s in self.schedules.values()
            if s.enabled and (s.next_check_at is None or s.next_check_at <= now)
        ]
        due.sort(key=lambda s: (s.priority, s.next_check_at or 0.0))
        return due[:limit]

    async def astart_rule_check(self, rule: str, engine: str) -> int:
        """Record a running check and push the schedule's next due time."""
        await self._simulate_delay()
        now = self._clock()
        check_id = self._next_check_id
        self._next_check_id += 1
        self.rule_checks[check_id] = RuleCheckRecord(
            check_id=check_id,
            rule=rule,
            engine=engine,
            status=RuleCheckStatus.RUNNING,
            started_at=now,
        )

        schedule = self.schedules.get((rule, engine))
        if schedule is not None:
            self.schedules[schedule.key] = replace(
                schedule,
                last_checked_at=now,
                next_check_at=now + schedule.check_frequency_ms / 1000,
            )
        return check_id

    async def acomplete_rule_check(
        self,
        check_id: int,
        violations_found: int,
        execution_time_ms: float,
        files_checked: int,
        files_with_violations: int,
    ) -> None:
        await self._simulate_delay()
        record = self._get_check(check_id)
        record.status = RuleCheckStatus.COMPLETED
        record.completed_at = self._clock()
        record.violations_found = violations_found
        record.execution_time_ms = execution_time_ms
        record.files_checked = files_checked
        record.files_with_violations = files_with_violations

    async def afail_rule_check(self, check_id: int, error: str) -> None:
        await self._simulate_delay()
        record = self._get_check(check_id)
        record.status = RuleCheckStatus.FAILED
        record.completed_at = self._clock()
        record.error = error

    def _get_check(self, check_id: int) -> RuleCheckRecord:
        try:
            return self.rule_checks[check_id]
        except KeyError:
            raise KeyError(f"Unknown rule check id: {check_id}") from None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def arecord_performance_metric(
        self, name: str, value: float, unit: str = "ms", note: str | None = None
    ) -> None:
        await self._simulate_delay()
        self.metrics.append(
            PerformanceMetric(
                name=name, value=value, unit=unit, note=note, recorded_at=self._clock()
            )
        )

    async def acleanup_old_data(self) -> int:
        """Drop metrics, finished checks and resolved violations past the age limit."""
        await self._simulate_delay()
        cutoff = self._clock() - self.max_history_age_seconds

        kept_metrics = [m for m in self.metrics if m.recorded_at >= cutoff]
        removed = len(self.metrics) - len(kept_metrics)
        self.metrics = kept_metrics

        stale_checks = [
            cid
            for cid, r in self.rule_checks.items()
            if r.completed_at is not None and r.completed_at < cutoff
        ]
        for cid in stale_checks:
            del self.rule_checks[cid]

        stale_violations = [
            h
            for h, row in self.violations.items()
            if row.status == ViolationStatus.RESOLVED and row.last_seen_at < cutoff
        ]
        for h in stale_violations:
            del self.violations[h]

        return removed + len(stale_checks) + len(stale_violations)

    async def aget_storage_stats(self) -> dict[str, Any]:
        await self._simulate_delay()
        rows = list(self.violations.values())
        active = sum(1 for r in rows if r.status == ViolationStatus.ACTIVE)
        return {
            "total_violations": len(rows),
            "active_violations": active,
            "resolved_violations": len(rows) - active,
            "total_rule_checks": len(self.rule_checks),
            "total_schedules": len(self.schedules),
            "total_metrics": len(self.metrics),
            "oldest_violation": min((r.first_seen_at for r in rows), default=None),
            "newest_violation": max((r.last_seen_at for r in rows), default=None),
        }

    def reset(self) -> None:
        """Drop everything."""
        self.violations.clear()
        self.schedules.clear()
        self.rule_checks.clear()
        self.metrics.clear()
        self._next_check_id = 1
