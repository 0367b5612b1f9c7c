"""Result records produced by one analysis cycle.

Every record here is frozen and holds tuples or read-only mappings, so a
result handed to a display or to storage cannot be modified afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from codewatch.kernel.domain.violation import Violation

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class EngineResult:
    """Output of a single engine invocation."""

    engine_name: str
    violations: tuple[Violation, ...] = ()
    execution_time_ms: float = 0.0
    success: bool = True
    error: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True, slots=True)
class FileCount:
    """Number of violations reported for one file."""

    file: str
    count: int


@dataclass(frozen=True, slots=True)
class ViolationSummary:
    """Histograms over a deduplicated violation set."""

    total: int = 0
    by_severity: Mapping[str, int] = field(default_factory=lambda: _EMPTY)
    by_source: Mapping[str, int] = field(default_factory=lambda: _EMPTY)
    by_category: Mapping[str, int] = field(default_factory=lambda: _EMPTY)
    top_files: tuple[FileCount, ...] = ()


class CrossoverWarningType(StrEnum):
    """Kinds of overlap the crossover detector reports."""

    TYPE_AWARE_RULE = "type-aware-rule"
    DUPLICATE_VIOLATION = "duplicate-violation"
    CONFIGURATION_CONFLICT = "configuration-conflict"


@dataclass(frozen=True, slots=True)
class CrossoverWarning:
    """One overlap or conflict between analysis sources.

    ``severity`` is ``"error"`` for critical warnings; those fail the cycle
    when ``CrossoverConfig.fail_on_crossover`` is enabled.
    """

    type: CrossoverWarningType
    message: str
    details: str
    suggestion: str
    severity: str = "warn"
    affected_rules: tuple[str, ...] = ()
    affected_files: tuple[str, ...] = ()

    @property
    def is_critical(self) -> bool:
        return self.severity == "error"


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """Outcome of handing a batch of violations to the tracker.

    Attributes
    ----------
    processed : int
        Records handed to storage after dedup and validation.
    inserted : int
        Records storage reported as new.
    updated : int
        Records storage reported as already known.
    deduplicated : int
        Records dropped because an earlier record had the same identity hash.
    errors : tuple[str, ...]
        One entry per rejected record, plus storage-reported errors.
    """

    processed: int = 0
    inserted: int = 0
    updated: int = 0
    deduplicated: int = 0
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OrchestratorResult:
    """One full analysis cycle."""

    violations: tuple[Violation, ...]
    engine_results: tuple[EngineResult, ...]
    total_execution_time_ms: float
    summary: ViolationSummary
    timestamp: datetime = field(default_factory=datetime.now)
    crossover_warnings: tuple[CrossoverWarning, ...] = ()
    warnings: tuple[str, ...] = ()
    processing: ProcessingResult | None = None

    @property
    def successful_engines(self) -> tuple[str, ...]:
        return tuple(r.engine_name for r in self.engine_results if r.success)

    @property
    def failed_engines(self) -> tuple[str, ...]:
        return tuple(r.engine_name for r in self.engine_results if not r.success)
