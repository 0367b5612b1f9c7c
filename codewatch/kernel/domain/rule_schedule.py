"""Domain models for scheduled rule checks.

Used by :class:`~codewatch.stdlib.lib.rule_scheduler.RuleScheduler` to
track which ``(rule, engine)`` pairs are due and what each check produced.
"""

from __future__ import annotations

from dataclasses import dataclass

from codewatch.kernel.domain.violation import Violation

RuleKey = tuple[str, str]

# Priority given to schedules that were explicitly disabled
DISABLED_PRIORITY = 999


@dataclass(frozen=True, slots=True)
class RuleSchedule:
    """A ``(rule, engine)`` pair the scheduler checks periodically.

    Schedules are never deleted, only disabled. ``last_checked_at`` and
    ``next_check_at`` are epoch seconds maintained by storage.
    """

    rule_id: str
    engine: str
    enabled: bool = True
    priority: int = 1
    check_frequency_ms: int = 30_000
    last_checked_at: float | None = None
    next_check_at: float | None = None

    @property
    def key(self) -> RuleKey:
        return (self.rule_id, self.engine)


@dataclass(frozen=True, slots=True)
class RuleCheckResult:
    """Outcome of one execution of a scheduled rule."""

    rule: str
    engine: str
    success: bool
    check_id: int | None = None
    violation_count: int = 0
    execution_time_ms: float = 0.0
    files_checked: int = 0
    files_with_violations: int = 0
    violations: tuple[Violation, ...] = ()
    error: str | None = None

    @property
    def key(self) -> RuleKey:
        return (self.rule, self.engine)


@dataclass(frozen=True, slots=True)
class RuleExecution:
    """What a rule runner reports back to the scheduler for one check."""

    violations: tuple[Violation, ...] = ()
    files_checked: int = 0
    files_with_violations: int = 0
