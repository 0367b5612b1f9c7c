"""Domain models for codewatch."""

from codewatch.kernel.domain.identity import compute_violation_hash, hash_identity, identity_key
from codewatch.kernel.domain.results import (
    CrossoverWarning,
    CrossoverWarningType,
    EngineResult,
    FileCount,
    OrchestratorResult,
    ProcessingResult,
    ViolationSummary,
)
from codewatch.kernel.domain.rule_schedule import RuleCheckResult, RuleExecution, RuleSchedule
from codewatch.kernel.domain.violation import Severity, Violation, severity_rank
from codewatch.kernel.domain.watch_state import (
    WATCH_TRANSITIONS,
    PhaseTransition,
    WatchPhase,
    WatchStateData,
    is_valid_transition,
)

__all__ = [
    "WATCH_TRANSITIONS",
    "CrossoverWarning",
    "CrossoverWarningType",
    "EngineResult",
    "FileCount",
    "OrchestratorResult",
    "PhaseTransition",
    "ProcessingResult",
    "RuleCheckResult",
    "RuleExecution",
    "RuleSchedule",
    "Severity",
    "Violation",
    "ViolationSummary",
    "WatchPhase",
    "WatchStateData",
    "compute_violation_hash",
    "hash_identity",
    "identity_key",
    "is_valid_transition",
    "severity_rank",
]
