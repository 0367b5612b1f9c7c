"""ViolationTracker lib: identity hashing, validation and persistence handoff.

The tracker turns a batch of findings into persisted, trackable records:

1. deduplicate by identity hash (first occurrence wins)
2. validate each record; invalid ones are reported, never raised
3. sanitize the valid ones (trimmed copies, defaulted fields)
4. hand the batch to storage in one call

Hash and validation results are memoized across watch cycles. Both caches
are only touched from the single analysis path, so they need no locking.

Programmatic::

    from codewatch.stdlib.adapters.memory import InMemoryViolationStorage
    from codewatch.stdlib.lib.violation_tracker import ViolationTracker

    tracker = ViolationTracker(storage=InMemoryViolationStorage())
    result = await tracker.aprocess_violations(violations)
    result.inserted, result.errors
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codewatch.kernel.config.models import TrackerConfig
from codewatch.kernel.domain.identity import hash_identity, identity_key
from codewatch.kernel.domain.results import ProcessingResult
from codewatch.kernel.exceptions import PersistenceError
from codewatch.kernel.logging import get_logger
from codewatch.kernel.utils.caching import KeyedCache
from codewatch.kernel.utils.timer import Timer
from codewatch.kernel.validation.violation_validator import ValidationResult, ViolationValidator

if TYPE_CHECKING:
    from codewatch.kernel.domain.violation import Violation
    from codewatch.kernel.ports.storage import ViolationStorage

logger = get_logger(__name__)

_PROCESSING_METRIC = "violation_processing"


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Sizes of the tracker's memoization caches."""

    validation_cache_size: int
    hash_cache_size: int

    @property
    def total_cache_size(self) -> int:
        return self.validation_cache_size + self.hash_cache_size


@dataclass(frozen=True, slots=True)
class ViolationDelta:
    """Change in the set of identity hashes between two cycles."""

    added: frozenset[str]
    removed: frozenset[str]
    unchanged: frozenset[str]

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


class ViolationTracker:
    """Tracks violations across analysis cycles.

    Parameters
    ----------
    storage : ViolationStorage | None
        Persistence backend. Without one, batches are validated and counted
        but nothing is stored.
    config : TrackerConfig | None
        Batch size and validator settings.
    validator : ViolationValidator | None
        Overrides the validator built from ``config``.
    silent : bool
        Suppress per-record warning logs.
    """

    def __init__(
        self,
        storage: ViolationStorage | None = None,
        config: TrackerConfig | None = None,
        validator: ViolationValidator | None = None,
        silent: bool = False,
    ) -> None:
        self._storage = storage
        self._config = config or TrackerConfig()
        self._validator = validator or ViolationValidator(
            known_sources=self._config.known_sources,
            file_extensions=self._config.file_extensions,
            max_message_length=self._config.max_message_length,
        )
        self._silent = silent
        self._hash_cache: KeyedCache[str] = KeyedCache()
        self._validation_cache: KeyedCache[ValidationResult] = KeyedCache()

    @property
    def storage(self) -> ViolationStorage | None:
        return self._storage

    @property
    def config(self) -> TrackerConfig:
        return self._config

    def apply_config(self, config: TrackerConfig) -> None:
        """Switch to ``config`` for subsequent batches.

        The validator is rebuilt from the new settings and cached validation
        results are dropped; identity hashes do not depend on the config and
        stay cached.
        """
        self._config = config
        self._validator = ViolationValidator(
            known_sources=config.known_sources,
            file_extensions=config.file_extensions,
            max_message_length=config.max_message_length,
        )
        self._validation_cache.clear()
        logger.debug("Tracker configuration applied (batch size {size})", size=config.batch_size)

    def set_silent_mode(self, silent: bool) -> None:
        """Enable or disable per-record warning logs."""
        self._silent = silent

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    def generate_hash(self, violation: Violation) -> str:
        """Return the memoized identity hash of ``violation``."""
        key = identity_key(violation)
        return self._hash_cache.get_or_create(key, lambda: hash_identity(key))

    def validate_violation_hash(self, violation: Violation, expected: str) -> bool:
        """Check that ``expected`` is the identity hash of ``violation``."""
        return self.generate_hash(violation) == expected

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_violation(self, violation: Violation) -> ValidationResult:
        """Validate ``violation``, memoized by ``(file, line, message)``."""
        key = (violation.file, violation.line, violation.message)
        return self._validation_cache.get_or_create(
            key, lambda: self._validator.validate(violation)
        )

    def sanitize_violation(self, violation: Violation) -> Violation:
        """Return a trimmed copy of ``violation`` with defaulted fields."""
        return self._validator.sanitize(violation)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def aprocess_violations(self, violations: Sequence[Violation]) -> ProcessingResult:
        """Deduplicate, validate, sanitize and store a batch.

        Returns
        -------
        ProcessingResult
            Counts plus one error line per rejected record.

        Raises
        ------
        PersistenceError
            If the storage call itself fails.
        """
        timer = Timer()

        unique: dict[str, Violation] = {}
        for v in violations:
            unique.setdefault(self.generate_hash(v), v)
        deduplicated = len(violations) - len(unique)

        errors: list[str] = []
        accepted: dict[str, Violation] = {}
        for digest, v in unique.items():
            validation = self.validate_violation(v)
            if not validation.is_valid:
                errors.append(
                    f"Invalid violation in {v.file}:{v.line} - {', '.join(validation.errors)}"
                )
                continue
            if validation.warnings and not self._silent:
                logger.debug(
                    "Violation warnings for {location}: {warnings}",
                    location=v.location,
                    warnings="; ".join(validation.warnings),
                )
            accepted[digest] = self.sanitize_violation(v)

        if errors and not self._silent:
            logger.warning("Rejected {count} invalid violations", count=len(errors))

        if self._storage is None or not accepted:
            return ProcessingResult(
                processed=len(accepted),
                deduplicated=deduplicated,
                errors=tuple(errors),
            )

        try:
            stored = await self._storage.astore_violations(accepted)
        except Exception as e:
            raise PersistenceError("store_violations", e) from e

        await self._record_metric(
            _PROCESSING_METRIC,
            timer.duration_ms,
            f"Processed {len(accepted)} violations",
        )

        return ProcessingResult(
            processed=len(accepted),
            inserted=stored.inserted,
            updated=stored.updated,
            deduplicated=deduplicated,
            errors=(*errors, *stored.errors),
        )

    async def aprocess_batched_violations(
        self, violations: Sequence[Violation], batch_size: int | None = None
    ) -> list[ProcessingResult]:
        """Process ``violations`` in consecutive batches.

        Identity dedup applies within each batch only.
        """
        size = batch_size or self._config.batch_size
        return [
            await self.aprocess_violations(violations[i : i + size])
            for i in range(0, len(violations), size)
        ]

    @staticmethod
    def aggregate_batch_results(results: Iterable[ProcessingResult]) -> ProcessingResult:
        """Sum a sequence of batch results into one."""
        processed = inserted = updated = deduplicated = 0
        errors: list[str] = []
        for r in results:
            processed += r.processed
            inserted += r.inserted
            updated += r.updated
            deduplicated += r.deduplicated
            errors.extend(r.errors)
        return ProcessingResult(
            processed=processed,
            inserted=inserted,
            updated=updated,
            deduplicated=deduplicated,
            errors=tuple(errors),
        )

    async def amark_as_resolved(self, hashes: Sequence[str]) -> int:
        """Mark stored violations resolved; returns the number changed."""
        if self._storage is None or not hashes:
            return 0
        logger.info("Marking {count} violations as resolved", count=len(hashes))
        try:
            return await self._storage.aresolve_violations(list(hashes))
        except Exception as e:
            raise PersistenceError("resolve_violations", e) from e

    @staticmethod
    def compute_violation_deltas(
        previous: Iterable[str], current: Iterable[str]
    ) -> ViolationDelta:
        """Compare two cycles' identity hashes.

        Examples
        --------
        >>> delta = ViolationTracker.compute_violation_deltas({"a", "b"}, {"b", "c"})
        >>> sorted(delta.added), sorted(delta.removed), sorted(delta.unchanged)
        (['c'], ['a'], ['b'])
        """
        before, after = frozenset(previous), frozenset(current)
        return ViolationDelta(
            added=after - before,
            removed=before - after,
            unchanged=before & after,
        )

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    @staticmethod
    def filter_by_rule(
        violations: Iterable[Violation], rule_ids: Iterable[str]
    ) -> list[Violation]:
        rules = set(rule_ids)
        return [v for v in violations if v.rule and v.rule in rules]

    @staticmethod
    def filter_by_severity(
        violations: Iterable[Violation], severities: Iterable[str]
    ) -> list[Violation]:
        wanted = set(severities)
        return [v for v in violations if v.severity in wanted]

    @staticmethod
    def filter_by_file(violations: Iterable[Violation], files: Iterable[str]) -> list[Violation]:
        wanted = set(files)
        return [v for v in violations if v.file in wanted]

    def apply_filters(
        self,
        violations: Iterable[Violation],
        rule_ids: Iterable[str] | None = None,
        severities: Iterable[str] | None = None,
        file_paths: Iterable[str] | None = None,
        categories: Iterable[str] | None = None,
        sources: Iterable[str] | None = None,
    ) -> list[Violation]:
        """Apply every given filter; ``None`` means no restriction."""
        filtered = list(violations)
        if rule_ids is not None:
            filtered = self.filter_by_rule(filtered, rule_ids)
        if severities is not None:
            filtered = self.filter_by_severity(filtered, severities)
        if file_paths is not None:
            filtered = self.filter_by_file(filtered, file_paths)
        if categories is not None:
            wanted = set(categories)
            filtered = [v for v in filtered if v.category in wanted]
        if sources is not None:
            wanted = set(sources)
            filtered = [v for v in filtered if v.source in wanted]
        return filtered

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------

    def clear_caches(self) -> None:
        """Drop memoized hashes and validation results."""
        self._hash_cache.clear()
        self._validation_cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            validation_cache_size=len(self._validation_cache),
            hash_cache_size=len(self._hash_cache),
        )

    async def _record_metric(self, name: str, value: float, note: str) -> None:
        if self._storage is None:
            return
        try:
            await self._storage.arecord_performance_metric(name, value, "ms", note)
        except Exception as e:  # noqa: BLE001
            logger.debug("Failed to record metric {name}: {error}", name=name, error=e)
