"""Tests for ViolationTracker."""

from __future__ import annotations

from collections.abc import Mapping

import pytest

from codewatch.kernel.domain.identity import compute_violation_hash
from codewatch.kernel.domain.violation import Violation
from codewatch.kernel.exceptions import PersistenceError
from codewatch.kernel.ports.storage import StoreResult, ViolationStatus
from codewatch.stdlib.adapters.memory import InMemoryViolationStorage
from codewatch.stdlib.lib.violation_tracker import ViolationTracker


def _v(file: str = "a.ts", line: int | None = 1, **kwargs: object) -> Violation:
    fields: dict[str, object] = {
        "message": "M",
        "category": "type-error",
        "severity": "error",
        "source": "typescript",
        "rule": "TS1",
    }
    fields.update(kwargs)
    return Violation(file=file, line=line, **fields)  # type: ignore[arg-type]


class _BrokenStorage(InMemoryViolationStorage):
    async def astore_violations(self, violations: Mapping[str, Violation]) -> StoreResult:
        raise OSError("disk full")

    async def aresolve_violations(self, hashes: object) -> int:
        raise OSError("disk full")


@pytest.fixture
def storage() -> InMemoryViolationStorage:
    return InMemoryViolationStorage()


@pytest.fixture
def tracker(storage: InMemoryViolationStorage) -> ViolationTracker:
    return ViolationTracker(storage)


# ---------------------------------------------------------------------------
# Hashing and caches
# ---------------------------------------------------------------------------


class TestHashing:
    def test_matches_uncached_hash(self, tracker: ViolationTracker) -> None:
        v = _v()
        assert tracker.generate_hash(v) == compute_violation_hash(v)
        assert tracker.validate_violation_hash(v, compute_violation_hash(v))
        assert not tracker.validate_violation_hash(v, "0" * 64)

    def test_cache_stats_and_clear(self, tracker: ViolationTracker) -> None:
        tracker.generate_hash(_v(line=1))
        tracker.generate_hash(_v(line=2))
        tracker.generate_hash(_v(line=1))
        tracker.validate_violation(_v(line=1))
        stats = tracker.get_cache_stats()
        assert stats.hash_cache_size == 2
        assert stats.validation_cache_size == 1
        assert stats.total_cache_size == 3

        tracker.clear_caches()
        assert tracker.get_cache_stats().total_cache_size == 0


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


class TestProcessViolations:
    @pytest.mark.asyncio()
    async def test_inserts_then_updates(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        first = await tracker.aprocess_violations([_v(line=1), _v(line=2)])
        assert first.processed == 2
        assert first.inserted == 2
        assert first.updated == 0

        second = await tracker.aprocess_violations([_v(line=1), _v(line=3)])
        assert second.inserted == 1
        assert second.updated == 1
        assert len(storage.violations) == 3

    @pytest.mark.asyncio()
    async def test_duplicate_identity_stored_once(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        a = _v(severity="error", source="typescript")
        b = _v(severity="warn", source="eslint")
        result = await tracker.aprocess_violations([a, b])
        assert result.deduplicated == 1
        assert result.processed == 1
        stored = await storage.aget_violations()
        assert stored[0].source == "typescript"

    @pytest.mark.asyncio()
    async def test_invalid_records_reported_not_raised(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        result = await tracker.aprocess_violations([_v(file=""), _v(line=-1), _v(line=5)])
        assert result.processed == 1
        assert result.inserted == 1
        assert len(result.errors) == 2
        assert "File path is required" in result.errors[0]
        assert "Line number must be a positive integer" in result.errors[1]
        assert len(storage.violations) == 1

    @pytest.mark.asyncio()
    async def test_stored_records_are_sanitized(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        await tracker.aprocess_violations([_v(message="  padded  ", rule="  ")])
        (stored,) = await storage.aget_violations()
        assert stored.message == "padded"
        assert stored.rule is None

    @pytest.mark.asyncio()
    async def test_without_storage(self) -> None:
        result = await ViolationTracker().aprocess_violations([_v()])
        assert result.processed == 1
        assert result.inserted == 0

    @pytest.mark.asyncio()
    async def test_records_processing_metric(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        await tracker.aprocess_violations([_v()])
        assert [m.name for m in storage.metrics] == ["violation_processing"]

    @pytest.mark.asyncio()
    async def test_storage_failure_raises_persistence_error(self) -> None:
        tracker = ViolationTracker(_BrokenStorage())
        with pytest.raises(PersistenceError, match="store_violations"):
            await tracker.aprocess_violations([_v()])

    @pytest.mark.asyncio()
    async def test_batches(self, tracker: ViolationTracker) -> None:
        violations = [_v(line=i) for i in range(1, 6)]
        results = await tracker.aprocess_batched_violations(violations, batch_size=2)
        assert [r.processed for r in results] == [2, 2, 1]
        total = ViolationTracker.aggregate_batch_results(results)
        assert total.processed == 5
        assert total.inserted == 5


# ---------------------------------------------------------------------------
# Resolution and deltas
# ---------------------------------------------------------------------------


class TestResolution:
    @pytest.mark.asyncio()
    async def test_mark_as_resolved(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        v = _v()
        await tracker.aprocess_violations([v])
        digest = tracker.generate_hash(v)

        assert await tracker.amark_as_resolved([digest]) == 1
        assert await tracker.amark_as_resolved([digest]) == 0
        assert await storage.aget_violations(status=ViolationStatus.RESOLVED) == [v]

    @pytest.mark.asyncio()
    async def test_resolved_violation_reactivates(
        self, tracker: ViolationTracker, storage: InMemoryViolationStorage
    ) -> None:
        v = _v()
        await tracker.aprocess_violations([v])
        await tracker.amark_as_resolved([tracker.generate_hash(v)])
        result = await tracker.aprocess_violations([v])
        assert result.updated == 1
        assert storage.get_active_hashes() == {tracker.generate_hash(v)}

    @pytest.mark.asyncio()
    async def test_empty_is_noop(self, tracker: ViolationTracker) -> None:
        assert await tracker.amark_as_resolved([]) == 0

    @pytest.mark.asyncio()
    async def test_resolve_failure(self) -> None:
        tracker = ViolationTracker(_BrokenStorage())
        with pytest.raises(PersistenceError, match="resolve_violations"):
            await tracker.amark_as_resolved(["abc"])

    def test_deltas(self) -> None:
        delta = ViolationTracker.compute_violation_deltas({"a", "b"}, {"b", "c"})
        assert delta.added == {"c"}
        assert delta.removed == {"a"}
        assert delta.unchanged == {"b"}
        assert delta.has_changes
        assert not ViolationTracker.compute_violation_deltas({"a"}, {"a"}).has_changes


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFilters:
    def test_apply_filters(self, tracker: ViolationTracker) -> None:
        violations = [
            _v(file="a.ts", rule="R1", severity="error", source="typescript"),
            _v(file="a.ts", rule="R2", severity="warn", source="eslint", category="style"),
            _v(file="b.ts", rule=None, severity="warn", source="eslint"),
        ]
        assert tracker.apply_filters(violations) == violations
        assert tracker.apply_filters(violations, rule_ids=["R2"]) == [violations[1]]
        assert tracker.apply_filters(violations, severities=["warn"], file_paths=["b.ts"]) == [
            violations[2]
        ]
        assert tracker.apply_filters(violations, categories=["style"]) == [violations[1]]
        assert tracker.apply_filters(violations, sources=["typescript"]) == [violations[0]]

    def test_rule_filter_skips_missing_rule(self) -> None:
        assert ViolationTracker.filter_by_rule([_v(rule=None)], [""]) == []
