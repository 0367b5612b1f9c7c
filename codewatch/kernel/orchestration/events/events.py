"""Event data classes for the codewatch event channel.

Each event kind is its own dataclass; subscribers register for a class (or a
base class) and receive typed payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from codewatch.kernel.domain.rule_schedule import RuleCheckResult
from codewatch.kernel.domain.watch_state import WatchPhase


@dataclass(slots=True)
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event.

        Override in subclasses to provide custom formatting.
        """
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


# Analysis events
@dataclass(slots=True)
class AnalysisStarted(Event):
    """An analysis cycle has started."""

    target_path: str
    engines: tuple[str, ...] = ()

    def log_message(self) -> str:
        engines = ", ".join(self.engines) or "no engines"
        return f"Analysis of '{self.target_path}' started ({engines})"


@dataclass(slots=True)
class AnalysisCompleted(Event):
    """An analysis cycle has finished and produced a result."""

    target_path: str
    violation_count: int
    duration_ms: float
    failed_engines: tuple[str, ...] = ()

    def log_message(self) -> str:
        failed = f", failed: {', '.join(self.failed_engines)}" if self.failed_engines else ""
        return (
            f"Analysis of '{self.target_path}' completed in {self.duration_ms:.0f}ms "
            f"with {self.violation_count} violations{failed}"
        )


@dataclass(slots=True)
class EngineFailed(Event):
    """An engine failed or timed out; the cycle continued without it."""

    engine_name: str
    error: str

    def log_message(self) -> str:
        return f"Engine '{self.engine_name}' failed: {self.error}"


# Rule scheduler events
@dataclass(slots=True)
class RuleStarted(Event):
    """A scheduled rule check has started."""

    rule: str
    engine: str

    def log_message(self) -> str:
        return f"Rule '{self.rule}' ({self.engine}) started"


@dataclass(slots=True)
class RuleCompleted(Event):
    """A scheduled rule check has completed successfully."""

    result: RuleCheckResult

    def log_message(self) -> str:
        return (
            f"Rule '{self.result.rule}' ({self.result.engine}) completed: "
            f"{self.result.violation_count} violations in {self.result.execution_time_ms:.0f}ms"
        )


@dataclass(slots=True)
class RuleFailed(Event):
    """A scheduled rule check has failed."""

    rule: str
    engine: str
    error: str

    def log_message(self) -> str:
        return f"Rule '{self.rule}' ({self.engine}) failed: {self.error}"


@dataclass(slots=True)
class CycleCompleted(Event):
    """A polling cycle executed at least one rule check."""

    results: tuple[RuleCheckResult, ...]

    def log_message(self) -> str:
        return f"Polling cycle completed with {len(self.results)} rule checks"


# Watch events
@dataclass(slots=True)
class WatchStarted(Event):
    """Watch mode has started."""

    session_id: str
    interval_ms: int

    def log_message(self) -> str:
        return f"Watch session {self.session_id} started (every {self.interval_ms}ms)"


@dataclass(slots=True)
class WatchStopped(Event):
    """Watch mode has stopped."""

    session_id: str
    checks_count: int
    reason: str | None = None

    def log_message(self) -> str:
        return (
            f"Watch session {self.session_id} stopped after {self.checks_count} checks"
            f" ({self.reason or 'requested'})"
        )


@dataclass(slots=True)
class WatchCycleCompleted(Event):
    """One watch cycle finished; carries the delta against the previous cycle."""

    cycle: int
    total: int
    added: int
    resolved: int
    duration_ms: float

    def log_message(self) -> str:
        return (
            f"Watch cycle {self.cycle}: {self.total} violations "
            f"(+{self.added} / -{self.resolved}) in {self.duration_ms:.0f}ms"
        )


@dataclass(slots=True)
class WatchError(Event):
    """A watch cycle failed; the session will try to recover."""

    error: str
    cycle: int

    def log_message(self) -> str:
        return f"Watch cycle {self.cycle} failed: {self.error}"


# State machine events
@dataclass(slots=True)
class StateChanged(Event):
    """The watch state machine moved to a new phase."""

    from_phase: WatchPhase
    to_phase: WatchPhase
    reason: str | None = None

    def log_message(self) -> str:
        suffix = f" ({self.reason})" if self.reason else ""
        return f"Watch state {self.from_phase} -> {self.to_phase}{suffix}"


@dataclass(slots=True)
class InvalidTransitionAttempted(Event):
    """A phase change was rejected; the state is unchanged."""

    from_phase: WatchPhase
    to_phase: WatchPhase
    reason: str | None = None

    def log_message(self) -> str:
        return f"Rejected watch state transition {self.from_phase} -> {self.to_phase}"
