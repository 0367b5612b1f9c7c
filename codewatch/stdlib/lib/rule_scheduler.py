"""RuleScheduler lib: bounded-concurrency execution of scheduled rule checks.

Schedules live in storage; the scheduler asks storage for the next due
``(rule, engine)`` pairs and runs them through a rule runner. At most one
execution per key is in flight at any time: a second caller for a running
key awaits the same task and receives the same result object.

Programmatic::

    from codewatch.stdlib.lib.rule_scheduler import RuleScheduler

    scheduler = RuleScheduler(storage=storage, runner=rule_runner)
    await scheduler.aschedule_rule("no-unused-vars", "eslint")
    await scheduler.astart()
    ...
    await scheduler.astop()  # waits for in-flight checks
"""

from __future__ import annotations

import asyncio
import contextlib
from functools import partial
from typing import TYPE_CHECKING, Protocol

from codewatch.kernel.config.models import PollingConfig
from codewatch.kernel.domain.rule_schedule import DISABLED_PRIORITY, RuleCheckResult, RuleSchedule
from codewatch.kernel.exceptions import SchedulerError
from codewatch.kernel.logging import get_logger
from codewatch.kernel.orchestration.events import (
    CycleCompleted,
    RuleCompleted,
    RuleFailed,
    RuleStarted,
)
from codewatch.kernel.utils.timer import Timer

if TYPE_CHECKING:
    from codewatch.kernel.domain.rule_schedule import RuleExecution, RuleKey
    from codewatch.kernel.orchestration.events import Event, EventBus
    from codewatch.kernel.ports.storage import ViolationStorage

logger = get_logger(__name__)

_POLLING_METRIC = "polling_cycle"
_ALL_SCHEDULES_LIMIT = 100


class RuleRunner(Protocol):
    """Executes one rule check against its engine."""

    async def arun_rule(self, rule: str, engine: str) -> RuleExecution:
        """Run ``rule`` on ``engine`` and report what was found."""
        ...


class RuleScheduler:
    """Polls storage for due rules and executes them with a concurrency cap.

    Parameters
    ----------
    storage : ViolationStorage
        Holds schedules and rule-check history.
    runner : RuleRunner | None
        Executes checks. Without one every check fails with ``SchedulerError``.
    config : PollingConfig | None
        Frequency, concurrency cap and poll interval.
    event_bus : EventBus | None
        Receives ``RuleStarted``/``RuleCompleted``/``RuleFailed``/``CycleCompleted``.
    """

    def __init__(
        self,
        storage: ViolationStorage,
        runner: RuleRunner | None = None,
        config: PollingConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._storage = storage
        self._runner = runner
        self._config = config or PollingConfig()
        self._event_bus = event_bus
        self._active = False
        self._paused = False
        self._loop_task: asyncio.Task[None] | None = None
        self._in_flight: dict[RuleKey, asyncio.Task[RuleCheckResult]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def astart(self) -> None:
        """Start the polling loop. No-op if already running."""
        if self._active:
            logger.debug("Rule scheduler already running")
            return
        self._active = True
        self._paused = False
        self._loop_task = asyncio.create_task(self._run_poll_loop(), name="rule-scheduler-poll")
        logger.info(
            "Rule scheduler started (poll every {interval}ms, max {max} concurrent)",
            interval=self._config.poll_interval_ms,
            max=self._config.max_concurrent_checks,
        )

    async def astop(self) -> None:
        """Stop polling and wait for every in-flight check to finish."""
        if not self._active:
            logger.debug("Rule scheduler already stopped")
            return
        self._active = False
        self._paused = False

        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        if self._in_flight:
            logger.info(
                "Waiting for {count} in-flight rule checks to complete", count=len(self._in_flight)
            )
        await self.adrain()
        logger.info("Rule scheduler stopped")

    async def adrain(self) -> None:
        """Wait until no rule check is in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)
        self._in_flight.clear()

    def pause(self) -> None:
        """Skip poll cycles until ``resume``.

        Raises
        ------
        SchedulerError
            If the scheduler is not running.
        """
        if not self._active:
            raise SchedulerError("Cannot pause: rule scheduler is not running")
        self._paused = True
        logger.info("Rule scheduler paused")

    def resume(self) -> None:
        """Resume poll cycles after ``pause``.

        Raises
        ------
        SchedulerError
            If the scheduler is not running.
        """
        if not self._active:
            raise SchedulerError("Cannot resume: rule scheduler is not running")
        if not self._paused:
            logger.debug("Rule scheduler is not paused")
            return
        self._paused = False
        logger.info("Rule scheduler resumed")

    def is_running(self) -> bool:
        return self._active and not self._paused

    @property
    def is_paused(self) -> bool:
        return self._paused

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def aschedule_rule(
        self, rule: str, engine: str, frequency_ms: int | None = None
    ) -> RuleSchedule:
        """Enable periodic checks of ``rule`` on ``engine``."""
        schedule = RuleSchedule(
            rule_id=rule,
            engine=engine,
            enabled=True,
            priority=1,
            check_frequency_ms=frequency_ms or self._config.default_frequency_ms,
        )
        logger.info(
            "Scheduling rule {rule} ({engine}) every {freq}ms",
            rule=rule,
            engine=engine,
            freq=schedule.check_frequency_ms,
        )
        await self._storage.aupsert_rule_schedule(schedule)
        return schedule

    async def aunschedule_rule(self, rule: str, engine: str) -> RuleSchedule:
        """Disable checks of ``rule`` on ``engine``; the schedule is kept."""
        schedule = RuleSchedule(
            rule_id=rule,
            engine=engine,
            enabled=False,
            priority=DISABLED_PRIORITY,
            check_frequency_ms=self._config.default_frequency_ms,
        )
        logger.info("Unscheduling rule {rule} ({engine})", rule=rule, engine=engine)
        await self._storage.aupsert_rule_schedule(schedule)
        return schedule

    async def aget_scheduled_rules(self) -> list[RuleSchedule]:
        """Return the enabled schedules that are currently due."""
        return await self._storage.aget_next_rules_to_check(_ALL_SCHEDULES_LIMIT)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def aexecute_rule(self, rule: str, engine: str) -> RuleCheckResult:
        """Execute one rule check, joining an in-flight run of the same key.

        The check-and-insert below has no suspension point, so two
        concurrent callers cannot both start a run for one key.
        """
        key = (rule, engine)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._aperform_rule_check(rule, engine), name=f"rule-check:{rule}:{engine}"
            )
            self._in_flight[key] = task
            task.add_done_callback(partial(self._release, key))
        else:
            logger.debug("Rule {rule} ({engine}) is already running", rule=rule, engine=engine)
        # Shielded so a cancelled caller does not cancel the shared run
        return await asyncio.shield(task)

    async def aexecute_next_rules(self, max_concurrent: int | None = None) -> list[RuleCheckResult]:
        """Execute due rules into the free concurrency slots.

        Rejected executions are logged and published as ``RuleFailed``;
        only fulfilled results are returned.
        """
        limit = self._config.max_concurrent_checks if max_concurrent is None else max_concurrent
        available_slots = limit - len(self._in_flight)
        if available_slots <= 0:
            logger.debug("No available slots for rule execution")
            return []

        due = await self._storage.aget_next_rules_to_check(available_slots)
        if not due:
            return []

        logger.debug("Executing {count} scheduled rules", count=len(due))
        outcomes = await asyncio.gather(
            *(self.aexecute_rule(s.rule_id, s.engine) for s in due), return_exceptions=True
        )

        results: list[RuleCheckResult] = []
        for schedule, outcome in zip(due, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Failed to execute rule {rule} ({engine}): {error}",
                    rule=schedule.rule_id,
                    engine=schedule.engine,
                    error=outcome,
                )
                await self._publish(
                    RuleFailed(rule=schedule.rule_id, engine=schedule.engine, error=str(outcome))
                )
                continue
            results.append(outcome)
        return results

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> PollingConfig:
        return self._config

    def set_default_frequency(self, frequency_ms: int) -> None:
        """Set the frequency used for new schedules (>= 1000ms)."""
        self._config = self._config.with_updates(default_frequency_ms=frequency_ms)
        logger.info("Default frequency set to {freq}ms", freq=frequency_ms)

    def set_max_concurrent_checks(self, maximum: int) -> None:
        """Set the concurrency cap for subsequent cycles (>= 1)."""
        self._config = self._config.with_updates(max_concurrent_checks=maximum)
        logger.info("Max concurrent checks set to {max}", max=maximum)

    def apply_config(self, config: PollingConfig) -> None:
        """Replace the polling snapshot; the poll loop picks it up on its next tick."""
        self._config = config

    def set_runner(self, runner: RuleRunner) -> None:
        self._runner = runner

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_check_count(self) -> int:
        return len(self._in_flight)

    def in_flight_keys(self) -> list[RuleKey]:
        return list(self._in_flight)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _release(self, key: RuleKey, task: asyncio.Task[RuleCheckResult]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _run_poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.poll_interval_ms / 1000)
            if self._paused:
                continue
            await self._apoll_cycle()

    async def _apoll_cycle(self) -> None:
        timer = Timer()
        try:
            results = await self.aexecute_next_rules()
            if not results:
                return
            logger.info(
                "Poll cycle completed: {count} rules executed in {ms}ms",
                count=len(results),
                ms=timer.duration_str,
            )
            await self._storage.arecord_performance_metric(
                _POLLING_METRIC, timer.duration_ms, "ms", f"rules: {len(results)}"
            )
            await self._publish(CycleCompleted(results=tuple(results)))
        except Exception as e:  # noqa: BLE001
            logger.error("Error in poll cycle: {error}", error=e)

    async def _aperform_rule_check(self, rule: str, engine: str) -> RuleCheckResult:
        timer = Timer()
        logger.debug("Starting rule check: {rule} ({engine})", rule=rule, engine=engine)
        await self._publish(RuleStarted(rule=rule, engine=engine))

        check_id = await self._storage.astart_rule_check(rule, engine)
        try:
            if self._runner is None:
                raise SchedulerError("No rule runner configured")
            execution = await self._runner.arun_rule(rule, engine)
        except Exception as e:
            message = str(e)
            await self._storage.afail_rule_check(check_id, message)
            logger.warning(
                "Rule check failed: {rule} ({engine}) - {error}",
                rule=rule,
                engine=engine,
                error=message,
            )
            await self._publish(RuleFailed(rule=rule, engine=engine, error=message))
            return RuleCheckResult(
                rule=rule,
                engine=engine,
                success=False,
                check_id=check_id,
                execution_time_ms=timer.duration_ms,
                error=message,
            )

        elapsed = timer.duration_ms
        await self._storage.acomplete_rule_check(
            check_id,
            len(execution.violations),
            elapsed,
            execution.files_checked,
            execution.files_with_violations,
        )
        result = RuleCheckResult(
            rule=rule,
            engine=engine,
            success=True,
            check_id=check_id,
            violation_count=len(execution.violations),
            execution_time_ms=elapsed,
            files_checked=execution.files_checked,
            files_with_violations=execution.files_with_violations,
            violations=execution.violations,
        )
        logger.debug(
            "Rule check completed: {rule} ({engine}) - {count} violations in {ms}ms",
            rule=rule,
            engine=engine,
            count=result.violation_count,
            ms=f"{elapsed:.0f}",
        )
        await self._publish(RuleCompleted(result=result))
        return result

    async def _publish(self, event: Event) -> None:
        if self._event_bus is not None:
            await self._event_bus.anotify(event)
