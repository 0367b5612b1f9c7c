"""Merge, deduplication and summary of multi-engine results.

These are pure functions over immutable records; the orchestrator composes
them into one analysis cycle.

Examples
--------
>>> from codewatch.kernel.domain.violation import Violation
>>> a = Violation(file="a.ts", line=10, message="M", severity="error", source="typescript")
>>> b = Violation(file="a.ts", line=10, message="M", severity="error", source="eslint")
>>> [v.source for v in deduplicate([a, b], DedupStrategy.LOCATION)]
['typescript']
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Hashable, Iterable, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING

from codewatch.kernel.config.models import DedupStrategy
from codewatch.kernel.domain.results import FileCount, ViolationSummary
from codewatch.kernel.domain.violation import severity_rank

if TYPE_CHECKING:
    from codewatch.kernel.domain.results import EngineResult
    from codewatch.kernel.domain.violation import Violation

DEFAULT_SOURCE_PREFERENCE: tuple[str, ...] = ("typescript", "eslint")
TOP_FILES_LIMIT = 10
SIMILAR_CODE_PREFIX = 50

DedupKey = Callable[["Violation"], Hashable]


def _exact_key(v: Violation) -> Hashable:
    return (v.file, v.line, v.code, v.source)


def _location_key(v: Violation) -> Hashable:
    return (v.file, v.line)


def _similar_key(v: Violation) -> Hashable:
    return (v.file, v.category, (v.code or "")[:SIMILAR_CODE_PREFIX])


DEDUP_KEYS: dict[DedupStrategy, DedupKey] = {
    DedupStrategy.EXACT: _exact_key,
    DedupStrategy.LOCATION: _location_key,
    DedupStrategy.SIMILAR: _similar_key,
}


def sort_key(
    source_preference: Sequence[str] = DEFAULT_SOURCE_PREFERENCE,
) -> Callable[[Violation], tuple]:
    """Build the merge ordering ``(source, severity, file, line)``.

    Preferred sources come first in the given order; other sources follow
    alphabetically. Records are not validated yet when they are merged, so
    mistyped fields sort as their empty value instead of failing the
    comparison; the tracker rejects them afterwards.
    """
    ranks = {source: i for i, source in enumerate(source_preference)}
    unlisted = len(ranks)

    def _key(v: Violation) -> tuple:
        source = _text(v.source)
        return (
            ranks.get(source, unlisted),
            source,
            severity_rank(_text(v.severity)),
            _text(v.file),
            _line(v.line),
        )

    return _key


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _line(value: object) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def merge_violations(
    engine_results: Iterable[EngineResult],
    source_preference: Sequence[str] = DEFAULT_SOURCE_PREFERENCE,
) -> tuple[Violation, ...]:
    """Concatenate successful engines' violations in deterministic order.

    Failed engine results contribute nothing. The sort is stable, so records
    with equal keys keep the order in which engines were listed.
    """
    merged = [v for result in engine_results if result.success for v in result.violations]
    merged.sort(key=sort_key(source_preference))
    return tuple(merged)


def deduplicate(
    violations: Iterable[Violation], strategy: DedupStrategy | str = DedupStrategy.EXACT
) -> tuple[Violation, ...]:
    """Keep the first violation for each strategy key.

    Applying this twice with the same strategy returns the same sequence.
    """
    key_fn = DEDUP_KEYS[DedupStrategy(strategy)]
    seen: set[Hashable] = set()
    kept: list[Violation] = []
    for v in violations:
        key = key_fn(v)
        if key in seen:
            continue
        seen.add(key)
        kept.append(v)
    return tuple(kept)


def summarize(violations: Sequence[Violation], top_n: int = TOP_FILES_LIMIT) -> ViolationSummary:
    """Compute severity/source/category histograms and the busiest files."""
    by_file = Counter(v.file for v in violations)
    top_files = sorted(by_file.items(), key=lambda item: (-item[1], str(item[0])))[:top_n]
    return ViolationSummary(
        total=len(violations),
        by_severity=MappingProxyType(dict(Counter(v.severity for v in violations))),
        by_source=MappingProxyType(dict(Counter(v.source for v in violations))),
        by_category=MappingProxyType(dict(Counter(v.category for v in violations))),
        top_files=tuple(FileCount(file=f, count=c) for f, c in top_files),
    )
