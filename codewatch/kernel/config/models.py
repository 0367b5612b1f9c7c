"""Configuration data models for codewatch.

All models are frozen pydantic models: a configuration value is a snapshot.
Changes go through ``with_updates`` which validates and returns a new
snapshot, so a cycle that captured the old value keeps seeing it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from codewatch.kernel.exceptions import ValidationError


class DedupStrategy(StrEnum):
    """Key function used to collapse equivalent violations within a cycle."""

    EXACT = "exact"
    LOCATION = "location"
    SIMILAR = "similar"


class _FrozenConfig(BaseModel):
    """Base for immutable configuration snapshots."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def with_updates(self, **changes: Any) -> Self:
        """Return a validated copy with ``changes`` applied.

        Raises
        ------
        ValidationError
            If the updated values violate a constraint.
        """
        data = {**self.model_dump(), **changes}
        try:
            return type(self).model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or type(self).__name__
            raise ValidationError(field, first["msg"], first.get("input")) from e


class EngineConfig(_FrozenConfig):
    """Per-engine settings.

    Attributes
    ----------
    enabled : bool, default=True
        Disabled engines are skipped by ``Orchestrator.aanalyze``.
    priority : int, default=1
        Lower values are reported first; execution is concurrent.
    timeout_seconds : float | None, default=None
        Per-engine timeout; falls back to ``CodewatchConfig.default_engine_timeout_seconds``.
    options : dict[str, Any]
        Passed through to ``Engine.aanalyze``.
    """

    enabled: bool = True
    priority: int = 1
    timeout_seconds: float | None = Field(None, gt=0)
    options: dict[str, Any] = Field(default_factory=dict)


class DeduplicationConfig(_FrozenConfig):
    """Intra-cycle deduplication settings."""

    enabled: bool = True
    strategy: DedupStrategy = DedupStrategy.EXACT


class CrossoverConfig(_FrozenConfig):
    """Crossover detection settings.

    Attributes
    ----------
    critical_overlap_threshold : int | None, default=None
        Number of locations reported by both the compiler and the linter at
        which the overlap warning becomes critical. ``None`` never escalates.
    slow_engine_threshold_ms : float, default=10000
        Linter execution time above which a configuration warning is raised.
    """

    enabled: bool = True
    warn_on_type_aware_rules: bool = True
    warn_on_duplicate_violations: bool = True
    fail_on_crossover: bool = False
    critical_overlap_threshold: int | None = Field(None, ge=1)
    slow_engine_threshold_ms: float = Field(10_000, gt=0)


class PollingConfig(_FrozenConfig):
    """Rule scheduler settings."""

    default_frequency_ms: int = Field(30_000, ge=1000)
    max_concurrent_checks: int = Field(3, ge=1)
    poll_interval_ms: int = Field(5_000, ge=10)


class WatchConfig(_FrozenConfig):
    """Watch loop settings.

    ``cleanup_every_cycles`` controls how often ``auto_cleanup`` asks storage
    to drop old history.
    """

    interval_ms: int = Field(3_000, ge=10)
    auto_cleanup: bool = True
    cleanup_every_cycles: int = Field(10, ge=1)
    max_concurrent_checks: int = Field(3, ge=1)
    recovery_delay_ms: int = Field(1_000, ge=0)
    resolve_missing: bool = True


class TrackerConfig(_FrozenConfig):
    """Violation tracker settings."""

    batch_size: int = Field(100, ge=1)
    max_message_length: int = Field(500, ge=1)
    known_sources: tuple[str, ...] = (
        "typescript",
        "eslint",
        "unused-exports",
        "zod-detection",
        "archaeology",
    )
    file_extensions: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")


class LoggingConfig(_FrozenConfig):
    """Logging settings applied through ``configure_logging``."""

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True


def _default_engines() -> dict[str, EngineConfig]:
    return {
        "typescript": EngineConfig(priority=1),
        "eslint": EngineConfig(priority=2),
        "unused-exports": EngineConfig(priority=3),
        "zod-detection": EngineConfig(priority=4),
        "archaeology": EngineConfig(priority=5, enabled=False),
    }


class CodewatchConfig(_FrozenConfig):
    """Complete codewatch configuration.

    Examples
    --------
    >>> config = CodewatchConfig()
    >>> config.deduplication.strategy
    <DedupStrategy.EXACT: 'exact'>
    >>> config.with_updates(target_path="src").target_path
    'src'
    """

    target_path: str = "."
    engines: dict[str, EngineConfig] = Field(default_factory=_default_engines)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    crossover: CrossoverConfig = Field(default_factory=CrossoverConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    source_preference: tuple[str, ...] = ("typescript", "eslint")
    default_engine_timeout_seconds: float = Field(120.0, gt=0)

    def engine_config(self, name: str) -> EngineConfig:
        """Return the config for ``name``, or defaults for unlisted engines."""
        return self.engines.get(name) or EngineConfig()
