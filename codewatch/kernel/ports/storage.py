"""Port interface for violation and schedule persistence.

The persistent store is an external collaborator; its on-disk layout is its
own concern. ``InMemoryViolationStorage`` in
``codewatch.stdlib.adapters.memory`` is the reference implementation.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from codewatch.kernel.domain.rule_schedule import RuleSchedule
    from codewatch.kernel.domain.violation import Violation


class ViolationStatus(StrEnum):
    """Lifecycle status of a stored violation."""

    ACTIVE = "active"
    RESOLVED = "resolved"


@dataclass(frozen=True, slots=True)
class StoreResult:
    """What storage reports after a batch write."""

    inserted: int = 0
    updated: int = 0
    errors: tuple[str, ...] = ()


@runtime_checkable
class ViolationStorage(Protocol):
    """Protocol for the persistent store used by the tracker and scheduler."""

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    @abstractmethod
    async def astore_violations(self, violations: Mapping[str, Violation]) -> StoreResult:
        """Upsert violations keyed by identity hash.

        A hash seen for the first time counts as inserted; a known hash
        (including one previously resolved, which becomes active again)
        counts as updated.
        """
        ...

    @abstractmethod
    async def aget_violations(
        self,
        status: ViolationStatus | None = ViolationStatus.ACTIVE,
        file: str | None = None,
        source: str | None = None,
    ) -> list[Violation]:
        """Return stored violations matching the filters."""
        ...

    @abstractmethod
    async def aresolve_violations(self, hashes: Sequence[str]) -> int:
        """Mark violations resolved; return how many changed status."""
        ...

    # ------------------------------------------------------------------
    # Rule schedules and checks
    # ------------------------------------------------------------------

    @abstractmethod
    async def aupsert_rule_schedule(self, schedule: RuleSchedule) -> None:
        """Create or replace the schedule for ``schedule.key``."""
        ...

    @abstractmethod
    async def aget_next_rules_to_check(self, limit: int) -> list[RuleSchedule]:
        """Return up to ``limit`` enabled, due schedules by priority then due time."""
        ...

    @abstractmethod
    async def astart_rule_check(self, rule: str, engine: str) -> int:
        """Record the start of a rule check and return its id."""
        ...

    @abstractmethod
    async def acomplete_rule_check(
        self,
        check_id: int,
        violations_found: int,
        execution_time_ms: float,
        files_checked: int,
        files_with_violations: int,
    ) -> None:
        """Record a successful rule check."""
        ...

    @abstractmethod
    async def afail_rule_check(self, check_id: int, error: str) -> None:
        """Record a failed rule check."""
        ...

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @abstractmethod
    async def arecord_performance_metric(
        self, name: str, value: float, unit: str = "ms", note: str | None = None
    ) -> None:
        """Record a performance sample."""
        ...

    @abstractmethod
    async def acleanup_old_data(self) -> int:
        """Remove expired history; return the number of removed records."""
        ...

    @abstractmethod
    async def aget_storage_stats(self) -> dict[str, Any]:
        """Return aggregate counters describing the store."""
        ...
