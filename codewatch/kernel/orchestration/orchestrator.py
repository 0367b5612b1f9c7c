"""Orchestrator - top-level coordinator for multi-engine analysis.

One analysis cycle runs every enabled engine concurrently, waits for all of
them (failed engines become failed ``EngineResult`` records), then merges,
deduplicates, checks for crossover between compiler and linter, summarizes
and hands the result to the violation tracker.

Watch mode repeats that cycle on an interval, together with the due
scheduled rule checks, under the control of a ``WatchStateManager``.
"""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import time
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from codewatch.kernel.config.models import CodewatchConfig, EngineConfig
from codewatch.kernel.domain.results import EngineResult, OrchestratorResult
from codewatch.kernel.domain.watch_state import WatchPhase
from codewatch.kernel.exceptions import CrossoverConflictError, OrchestratorError
from codewatch.kernel.logging import get_logger, set_correlation_id
from codewatch.kernel.orchestration.aggregation import deduplicate, merge_violations, summarize
from codewatch.kernel.orchestration.components import EngineRuleRunner, EngineRunner
from codewatch.kernel.orchestration.crossover import CrossoverDetector
from codewatch.kernel.orchestration.events import (
    AnalysisCompleted,
    AnalysisStarted,
    EventBus,
    WatchCycleCompleted,
    WatchError,
    WatchStarted,
    WatchStopped,
)
from codewatch.kernel.utils.timer import Timer
from codewatch.stdlib.lib.rule_scheduler import RuleScheduler
from codewatch.stdlib.lib.violation_tracker import CacheStats, ViolationDelta, ViolationTracker
from codewatch.stdlib.lib.watch_state import WatchStateManager

if TYPE_CHECKING:
    from codewatch.kernel.config.models import WatchConfig
    from codewatch.kernel.domain.rule_schedule import RuleCheckResult
    from codewatch.kernel.domain.watch_state import WatchStateData
    from codewatch.kernel.orchestration.events import Event
    from codewatch.kernel.ports.engine import Engine
    from codewatch.kernel.ports.storage import ViolationStorage

logger = get_logger(__name__)

_ANALYSIS_METRIC = "analysis_execution"
_WATCH_METRIC = "watch_cycle"
_ALL_CHECKS_LIMIT = 100
_CROSSOVER_SHUTDOWN = "crossover_conflict"


@dataclass(frozen=True, slots=True)
class EngineInfo:
    """Registry view of one engine."""

    name: str
    engine_type: str
    enabled: bool
    priority: int
    timeout_seconds: float


@dataclass(frozen=True, slots=True)
class DisplaySnapshot:
    """Everything a display needs to render one frame.

    Only produced while the state machine allows display reads, so
    ``current`` and ``baseline`` are never observed mid-analysis.
    """

    state: WatchStateData
    current: OrchestratorResult | None
    baseline: OrchestratorResult | None
    delta: ViolationDelta | None


@dataclass(frozen=True, slots=True)
class HealthCheckResult:
    overall: bool
    services: Mapping[str, bool]
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SystemStats:
    uptime_seconds: float
    active_checks: int
    watch_mode: bool
    watch_phase: WatchPhase | None
    checks_count: int
    engines: tuple[str, ...]
    cache: CacheStats
    storage: Mapping[str, Any]


class Orchestrator:
    """Coordinates engines, tracker, scheduler and watch state.

    Parameters
    ----------
    config : CodewatchConfig | None
        Initial configuration snapshot.
    engines : Mapping[str, Engine] | None
        Engines by name; names are matched against ``config.engines``.
    storage : ViolationStorage | None
        Persistence backend. Without one, results are not persisted and
        scheduled rule checks are unavailable.
    event_bus : EventBus | None
        Receives every lifecycle event; created when omitted.
    """

    def __init__(
        self,
        config: CodewatchConfig | None = None,
        engines: Mapping[str, Engine] | None = None,
        storage: ViolationStorage | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or CodewatchConfig()
        self._engines: dict[str, Engine] = dict(engines or {})
        self._storage = storage
        self.event_bus = event_bus or EventBus()

        self._engine_runner = EngineRunner(
            default_timeout=self._config.default_engine_timeout_seconds,
            event_bus=self.event_bus,
        )
        self._tracker = ViolationTracker(storage=storage, config=self._config.tracker)
        self._crossover = CrossoverDetector(self._config.crossover)
        self._scheduler: RuleScheduler | None = None
        if storage is not None:
            rule_runner = EngineRuleRunner(
                self._engines,
                target_path=lambda: self._config.target_path,
                engine_runner=self._engine_runner,
                timeout_for=self._engine_timeout,
            )
            self._scheduler = RuleScheduler(
                storage, rule_runner, self._config.polling, self.event_bus
            )

        self._engine_tasks: set[asyncio.Task[EngineResult]] = set()
        self._started_at = time.monotonic()

        # Watch session
        self._state: WatchStateManager | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._cycle = 0
        self._current: OrchestratorResult | None = None
        self._baseline: OrchestratorResult | None = None
        self._delta: ViolationDelta | None = None
        self._previous_hashes: frozenset[str] = frozenset()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> CodewatchConfig:
        return self._config

    @property
    def tracker(self) -> ViolationTracker:
        return self._tracker

    @property
    def scheduler(self) -> RuleScheduler | None:
        return self._scheduler

    @property
    def watch_state(self) -> WatchStateManager | None:
        return self._state

    @property
    def is_watch_mode_active(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def aanalyze(
        self, target_path: str | None = None, options: Mapping[str, Any] | None = None
    ) -> OrchestratorResult:
        """Run one full analysis cycle.

        Parameters
        ----------
        target_path : str | None
            Path to analyze; defaults to ``config.target_path``.
        options : Mapping[str, Any] | None
            Merged over each engine's configured options.

        Returns
        -------
        OrchestratorResult
            Merged, deduplicated violations plus per-engine results.

        Raises
        ------
        CrossoverConflictError
            If ``crossover.fail_on_crossover`` is set and a critical
            crossover warning was found.
        """
        config = self._config
        crossover = self._crossover
        path = target_path or config.target_path
        timer = Timer()

        selected = self._enabled_engines(config)
        names = tuple(name for name, _, _ in selected)
        logger.info("Analyzing {path} with {count} engines", path=path, count=len(selected))
        await self._publish(AnalysisStarted(target_path=path, engines=names))

        tasks = [
            asyncio.create_task(
                self._engine_runner.arun(
                    name,
                    engine,
                    path,
                    {**engine_config.options, **(options or {})},
                    self._engine_timeout(name),
                ),
                name=f"engine:{name}",
            )
            for name, engine, engine_config in selected
        ]
        self._engine_tasks.update(tasks)
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._engine_tasks.difference_update(tasks)

        engine_results = tuple(
            _settled_result(name, outcome, path)
            for name, outcome in zip(names, outcomes, strict=True)
        )
        warnings = [
            f"Engine '{r.engine_name}' failed: {r.error}" for r in engine_results if not r.success
        ]

        merged = merge_violations(engine_results, config.source_preference)
        violations = (
            deduplicate(merged, config.deduplication.strategy)
            if config.deduplication.enabled
            else merged
        )
        if len(violations) != len(merged):
            logger.debug(
                "Deduplicated {removed} of {total} violations ({strategy})",
                removed=len(merged) - len(violations),
                total=len(merged),
                strategy=config.deduplication.strategy,
            )

        crossover_warnings = crossover.detect(violations, engine_results)
        crossover.log_warnings(crossover_warnings)
        if config.crossover.fail_on_crossover and crossover.has_critical_issues(crossover_warnings):
            raise CrossoverConflictError(tuple(w for w in crossover_warnings if w.is_critical))

        summary = summarize(violations)
        elapsed = timer.duration_ms

        processing = None
        try:
            processing = await self._tracker.aprocess_violations(violations)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to persist analysis results: {error}", error=e)
            warnings.append(f"Persistence failed: {e}")
        await self._record_metric(
            _ANALYSIS_METRIC,
            elapsed,
            f"violations: {len(violations)}, engines: {len(engine_results)}",
        )

        result = OrchestratorResult(
            violations=violations,
            engine_results=engine_results,
            total_execution_time_ms=elapsed,
            summary=summary,
            crossover_warnings=crossover_warnings,
            warnings=tuple(warnings),
            processing=processing,
        )
        logger.info(
            "Analysis completed: {count} violations in {ms}ms",
            count=summary.total,
            ms=f"{elapsed:.0f}",
        )
        await self._publish(
            AnalysisCompleted(
                target_path=path,
                violation_count=summary.total,
                duration_ms=elapsed,
                failed_engines=result.failed_engines,
            )
        )
        return result

    def _enabled_engines(self, config: CodewatchConfig) -> list[tuple[str, Engine, EngineConfig]]:
        selected = []
        for name, engine in self._engines.items():
            engine_config = config.engine_config(name)
            if not engine_config.enabled:
                logger.debug("Skipping disabled engine {engine}", engine=name)
                continue
            selected.append((name, engine, engine_config))
        selected.sort(key=lambda item: (item[2].priority, item[0]))
        return selected

    def _engine_timeout(self, name: str) -> float:
        return (
            self._config.engine_config(name).timeout_seconds
            or self._config.default_engine_timeout_seconds
        )

    # ------------------------------------------------------------------
    # Engine registry
    # ------------------------------------------------------------------

    def add_engine(self, name: str, engine: Engine, config: EngineConfig | None = None) -> None:
        """Register ``engine`` under ``name``, optionally with its config."""
        self._engines[name] = engine
        if config is not None:
            self.update_config(engines={**self._config.engines, name: config})
        logger.debug("Registered engine {engine}", engine=name)

    def remove_engine(self, name: str) -> bool:
        """Unregister ``name``. Returns ``True`` if it was registered."""
        return self._engines.pop(name, None) is not None

    def get_engine(self, name: str) -> Engine | None:
        return self._engines.get(name)

    def get_engine_metadata(self) -> list[EngineInfo]:
        """Registered engines in reporting order."""
        infos = [
            EngineInfo(
                name=name,
                engine_type=type(engine).__name__,
                enabled=self._config.engine_config(name).enabled,
                priority=self._config.engine_config(name).priority,
                timeout_seconds=self._engine_timeout(name),
            )
            for name, engine in self._engines.items()
        ]
        infos.sort(key=lambda info: (info.priority, info.name))
        return infos

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, **changes: Any) -> CodewatchConfig:
        """Apply ``changes`` as a new snapshot; running cycles keep the old one.

        Raises
        ------
        ValidationError
            If the new values are invalid; the current snapshot is kept.
        """
        config = self._config.with_updates(**changes)
        self._config = config
        self._crossover = CrossoverDetector(config.crossover)
        self._engine_runner.default_timeout = config.default_engine_timeout_seconds
        if "tracker" in changes:
            self._tracker.apply_config(config.tracker)
        if self._scheduler is not None and "polling" in changes:
            self._scheduler.apply_config(config.polling)
        logger.info("Configuration updated: {keys}", keys=", ".join(sorted(changes)))
        return config

    # ------------------------------------------------------------------
    # Rule checks
    # ------------------------------------------------------------------

    async def arun_single_check(self, rule: str, engine: str) -> RuleCheckResult:
        """Execute one rule check now, joining an in-flight run of it."""
        scheduler = self._require_scheduler()
        logger.info("Running single check: {rule} ({engine})", rule=rule, engine=engine)
        return await scheduler.aexecute_rule(rule, engine)

    async def arun_all_checks(self) -> list[RuleCheckResult]:
        """Execute every due scheduled rule check now."""
        scheduler = self._require_scheduler()
        results = await scheduler.aexecute_next_rules(_ALL_CHECKS_LIMIT)
        logger.info("Completed {count} checks", count=len(results))
        return results

    def _require_scheduler(self) -> RuleScheduler:
        if self._scheduler is None:
            raise OrchestratorError("Scheduled rule checks require a storage backend")
        return self._scheduler

    # ------------------------------------------------------------------
    # Watch mode
    # ------------------------------------------------------------------

    async def astart_watch_mode(
        self,
        interval_ms: int | None = None,
        max_concurrent_checks: int | None = None,
        auto_cleanup: bool | None = None,
    ) -> str:
        """Start a watch session and return its id.

        The first cycle runs immediately; later cycles run every
        ``interval_ms``. Overrides apply to this session only.

        Raises
        ------
        OrchestratorError
            If a watch session is already running.
        ValidationError
            If an override is out of range.
        """
        if self.is_watch_mode_active:
            raise OrchestratorError("Watch mode is already active")

        overrides = {
            key: value
            for key, value in {
                "interval_ms": interval_ms,
                "max_concurrent_checks": max_concurrent_checks,
                "auto_cleanup": auto_cleanup,
            }.items()
            if value is not None
        }
        watch_config = self._config.watch.with_updates(**overrides)

        state = WatchStateManager(
            event_bus=self.event_bus,
            metadata={"target_path": self._config.target_path, **overrides},
        )
        self._state = state
        self._cycle = 0
        self._current = self._baseline = self._delta = None
        self._previous_hashes = frozenset()

        if self._scheduler is not None:
            await self._scheduler.astart()

        logger.info(
            "Watch mode started (session {session}, every {interval}ms)",
            session=state.session_id,
            interval=watch_config.interval_ms,
        )
        await self._publish(
            WatchStarted(session_id=state.session_id, interval_ms=watch_config.interval_ms)
        )
        # Cycles log under the session id; the caller's context is left untouched
        session_context = contextvars.copy_context()
        session_context.run(set_correlation_id, state.session_id)
        self._watch_task = asyncio.create_task(
            self._run_watch_loop(state, watch_config),
            name=f"watch:{state.session_id}",
            context=session_context,
        )
        return state.session_id

    async def astop_watch_mode(self, reason: str | None = None) -> None:
        """Stop the watch session, cancel its cycle and drain rule checks."""
        state = self._state
        task = self._watch_task
        if state is None or task is None:
            logger.debug("Watch mode not active")
            return
        self._watch_task = None
        if task.done():
            # The session ended itself and already reported it
            return

        if state.get_phase() != WatchPhase.SHUTDOWN:
            state.shutdown(reason or "user_shutdown")
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        if self._scheduler is not None:
            await self._scheduler.astop()
        await self._afinish_watch(state, reason)

    async def _afinish_watch(self, state: WatchStateManager, reason: str | None) -> None:
        logger.info(
            "Watch mode stopped after {checks} checks", checks=state.get_checks_count()
        )
        await self._publish(
            WatchStopped(
                session_id=state.session_id,
                checks_count=state.get_checks_count(),
                reason=reason,
            )
        )

    def pause_watch_mode(self) -> bool:
        """Skip watch cycles and scheduled checks until resumed."""
        if self._state is None or not self._state.pause():
            return False
        if self._scheduler is not None and self._scheduler.is_running():
            self._scheduler.pause()
        return True

    def resume_watch_mode(self) -> bool:
        if self._state is None or not self._state.resume():
            return False
        if self._scheduler is not None and self._scheduler.is_paused:
            self._scheduler.resume()
        return True

    def display_snapshot(self) -> DisplaySnapshot | None:
        """State for rendering, or ``None`` while the display must not read."""
        state = self._state
        if state is None or not state.can_update_display():
            return None
        return DisplaySnapshot(
            state=state.get_state(),
            current=self._current,
            baseline=self._baseline,
            delta=self._delta,
        )

    async def _run_watch_loop(self, state: WatchStateManager, watch_config: WatchConfig) -> None:
        interval = watch_config.interval_ms / 1000
        recovery_delay = watch_config.recovery_delay_ms / 1000
        while state.get_phase() != WatchPhase.SHUTDOWN:
            if state.get_phase() == WatchPhase.ERROR:
                state.recover()
            if state.get_phase() != WatchPhase.PAUSED:
                await self._arun_watch_cycle(state, watch_config)
            if state.get_phase() == WatchPhase.SHUTDOWN:
                break
            failed = state.get_phase() == WatchPhase.ERROR
            await asyncio.sleep(recovery_delay if failed else interval)

        # Only a crossover conflict shuts the session down from inside the loop
        if self._scheduler is not None:
            await self._scheduler.astop()
        await self._afinish_watch(state, _CROSSOVER_SHUTDOWN)

    async def _arun_watch_cycle(self, state: WatchStateManager, watch_config: WatchConfig) -> None:
        if not state.start_analysis():
            logger.debug("Skipping watch cycle in phase {phase}", phase=state.get_phase())
            return

        self._cycle += 1
        cycle = self._cycle
        timer = Timer()
        rule_results: list[RuleCheckResult] = []
        try:
            if self._scheduler is not None:
                rule_results = await self._scheduler.aexecute_next_rules(
                    watch_config.max_concurrent_checks
                )
            result = await self.aanalyze()
            hashes = frozenset(self._tracker.generate_hash(v) for v in result.violations)
            delta = self._tracker.compute_violation_deltas(self._previous_hashes, hashes)
            if watch_config.resolve_missing and delta.removed:
                await self._aresolve(delta.removed)
        except CrossoverConflictError as e:
            logger.error(
                "Watch cycle {cycle} hit a crossover conflict: {error}", cycle=cycle, error=e
            )
            state.handle_analysis_error(e)
            await self._publish(WatchError(error=str(e), cycle=cycle))
            state.shutdown(_CROSSOVER_SHUTDOWN)
            return
        except Exception as e:  # noqa: BLE001
            logger.error("Watch cycle {cycle} failed: {error}", cycle=cycle, error=e)
            state.handle_analysis_error(e)
            await self._publish(WatchError(error=str(e), cycle=cycle))
            return

        # Published only once the analysis flag is cleared
        self._current = result
        if self._baseline is None:
            self._baseline = result
        self._delta = delta
        self._previous_hashes = hashes
        state.complete_analysis()

        elapsed = timer.duration_ms
        await self._record_metric(_WATCH_METRIC, elapsed, f"rules: {len(rule_results)}")
        if watch_config.auto_cleanup and cycle % watch_config.cleanup_every_cycles == 0:
            await self._acleanup()

        await self._publish(
            WatchCycleCompleted(
                cycle=cycle,
                total=len(result.violations),
                added=len(delta.added),
                resolved=len(delta.removed),
                duration_ms=elapsed,
            )
        )

    async def _aresolve(self, hashes: frozenset[str]) -> None:
        try:
            await self._tracker.amark_as_resolved(sorted(hashes))
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to mark violations resolved: {error}", error=e)

    async def _acleanup(self) -> None:
        if self._storage is None:
            return
        try:
            removed = await self._storage.acleanup_old_data()
        except Exception as e:  # noqa: BLE001
            logger.warning("Auto-cleanup failed: {error}", error=e)
            return
        logger.debug("Auto-cleanup removed {count} records", count=removed)

    # ------------------------------------------------------------------
    # Health and lifecycle
    # ------------------------------------------------------------------

    async def ahealth_check(self) -> HealthCheckResult:
        """Report which services are usable.

        ``overall`` is true only when every service is healthy and no
        error was collected.
        """
        errors: list[str] = []
        services = {
            "engines": bool(self._enabled_engines(self._config)),
            "tracker": True,
            "scheduler": self._scheduler is not None,
            "storage": False,
        }
        if not services["engines"]:
            errors.append("No enabled engines registered")
        if self._scheduler is None:
            errors.append("Rule scheduler unavailable without storage")

        if self._storage is None:
            errors.append("No storage configured")
        else:
            try:
                await self._storage.aget_storage_stats()
                services["storage"] = True
            except Exception as e:  # noqa: BLE001
                errors.append(f"Storage service error: {e}")

        if self._state is not None and self.is_watch_mode_active:
            services["watch"] = self._state.is_active()
            issues = self._state.validate_state()
            errors.extend(f"Watch state: {issue}" for issue in issues)
            if self._state.get_phase() == WatchPhase.ERROR:
                errors.append(f"Watch session in error: {self._state.get_state().last_error}")

        return HealthCheckResult(
            overall=all(services.values()) and not errors,
            services=MappingProxyType(services),
            errors=tuple(errors),
        )

    async def aget_system_stats(self) -> SystemStats:
        storage_stats: dict[str, Any] = {}
        if self._storage is not None:
            try:
                storage_stats = await self._storage.aget_storage_stats()
            except Exception as e:  # noqa: BLE001
                logger.warning("Failed to read storage stats: {error}", error=e)
        state = self._state
        return SystemStats(
            uptime_seconds=time.monotonic() - self._started_at,
            active_checks=self._scheduler.active_check_count if self._scheduler else 0,
            watch_mode=self.is_watch_mode_active,
            watch_phase=state.get_phase() if state else None,
            checks_count=state.get_checks_count() if state else 0,
            engines=tuple(self._engines),
            cache=self._tracker.get_cache_stats(),
            storage=MappingProxyType(storage_stats),
        )

    async def ashutdown(self) -> None:
        """Stop watch mode, drain rule checks and cancel running engines."""
        logger.info("Shutting down")
        await self.astop_watch_mode("shutdown")
        if self._scheduler is not None:
            await self._scheduler.astop()
            await self._scheduler.adrain()

        pending = list(self._engine_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.event_bus.adrain()

    async def _record_metric(self, name: str, value: float, note: str) -> None:
        if self._storage is None:
            return
        try:
            await self._storage.arecord_performance_metric(name, value, "ms", note)
        except Exception as e:  # noqa: BLE001
            logger.debug("Failed to record metric {name}: {error}", name=name, error=e)

    async def _publish(self, event: Event) -> None:
        await self.event_bus.anotify(event)


def _settled_result(name: str, outcome: EngineResult | BaseException, path: str) -> EngineResult:
    """Turn a gathered engine outcome into an ``EngineResult``."""
    if isinstance(outcome, EngineResult):
        return outcome
    error = "cancelled" if isinstance(outcome, asyncio.CancelledError) else str(outcome)
    logger.warning("Engine '{engine}' did not complete: {error}", engine=name, error=error)
    return EngineResult(
        engine_name=name,
        success=False,
        error=error,
        metadata=MappingProxyType({"target_path": path, "violations_found": 0}),
    )
