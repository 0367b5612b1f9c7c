"""Tests for RuleScheduler."""

from __future__ import annotations

import asyncio

import pytest

from codewatch.kernel.config.models import PollingConfig
from codewatch.kernel.domain.rule_schedule import DISABLED_PRIORITY, RuleExecution
from codewatch.kernel.domain.violation import Violation
from codewatch.kernel.exceptions import SchedulerError, ValidationError
from codewatch.kernel.orchestration.events import (
    CycleCompleted,
    Event,
    EventBus,
    RuleCompleted,
    RuleFailed,
    RuleStarted,
)
from codewatch.stdlib.adapters.memory import InMemoryViolationStorage, RuleCheckStatus
from codewatch.stdlib.lib.rule_scheduler import RuleScheduler

# ---------------------------------------------------------------------------
# Mock runners
# ---------------------------------------------------------------------------


class _MockRunner:
    """Returns one violation per call; optionally blocks until released."""

    def __init__(self, gated: bool = False) -> None:
        self.calls: list[tuple[str, str]] = []
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()

    async def arun_rule(self, rule: str, engine: str) -> RuleExecution:
        self.calls.append((rule, engine))
        await self.gate.wait()
        return RuleExecution(
            violations=(Violation(file="a.ts", line=1, rule=rule, source=engine),),
            files_checked=3,
            files_with_violations=1,
        )


class _FailingRunner:
    async def arun_rule(self, rule: str, engine: str) -> RuleExecution:
        raise RuntimeError(f"{rule} exploded")


class _BrokenStartStorage(InMemoryViolationStorage):
    async def astart_rule_check(self, rule: str, engine: str) -> int:
        raise OSError("storage offline")


def _recorder(bus: EventBus) -> list[Event]:
    seen: list[Event] = []
    bus.subscribe(Event, seen.append)
    return seen


@pytest.fixture
def storage() -> InMemoryViolationStorage:
    return InMemoryViolationStorage()


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


class TestSchedules:
    @pytest.mark.asyncio()
    async def test_schedule_uses_default_frequency(
        self, storage: InMemoryViolationStorage
    ) -> None:
        scheduler = RuleScheduler(storage)
        schedule = await scheduler.aschedule_rule("no-any", "eslint")
        assert schedule.enabled
        assert schedule.priority == 1
        assert schedule.check_frequency_ms == 30_000
        assert storage.schedules[("no-any", "eslint")] == schedule

    @pytest.mark.asyncio()
    async def test_schedule_custom_frequency(self, storage: InMemoryViolationStorage) -> None:
        schedule = await RuleScheduler(storage).aschedule_rule("r", "eslint", 5_000)
        assert schedule.check_frequency_ms == 5_000

    @pytest.mark.asyncio()
    async def test_unschedule_disables(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage)
        await scheduler.aschedule_rule("r", "eslint")
        await scheduler.aunschedule_rule("r", "eslint")

        schedule = storage.schedules[("r", "eslint")]
        assert not schedule.enabled
        assert schedule.priority == DISABLED_PRIORITY
        assert await scheduler.aget_scheduled_rules() == []


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestExecuteRule:
    @pytest.mark.asyncio()
    async def test_success_recorded(self, storage: InMemoryViolationStorage) -> None:
        bus = EventBus()
        seen = _recorder(bus)
        scheduler = RuleScheduler(storage, _MockRunner(), event_bus=bus)

        result = await scheduler.aexecute_rule("no-any", "eslint")

        assert result.success
        assert result.violation_count == 1
        assert result.files_checked == 3
        record = storage.rule_checks[result.check_id or 0]
        assert record.status is RuleCheckStatus.COMPLETED
        assert record.violations_found == 1
        assert [type(e) for e in seen] == [RuleStarted, RuleCompleted]
        assert scheduler.active_check_count == 0

    @pytest.mark.asyncio()
    async def test_runner_failure_becomes_failed_result(
        self, storage: InMemoryViolationStorage
    ) -> None:
        bus = EventBus()
        failures: list[RuleFailed] = []
        bus.subscribe(RuleFailed, failures.append)
        scheduler = RuleScheduler(storage, _FailingRunner(), event_bus=bus)

        result = await scheduler.aexecute_rule("r", "eslint")

        assert not result.success
        assert result.error == "r exploded"
        assert storage.rule_checks[result.check_id or 0].status is RuleCheckStatus.FAILED
        assert [f.error for f in failures] == ["r exploded"]

    @pytest.mark.asyncio()
    async def test_missing_runner(self, storage: InMemoryViolationStorage) -> None:
        result = await RuleScheduler(storage).aexecute_rule("r", "eslint")
        assert not result.success
        assert result.error == "No rule runner configured"

    @pytest.mark.asyncio()
    async def test_at_most_one_run_per_key(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner(gated=True)
        scheduler = RuleScheduler(storage, runner)

        first = asyncio.create_task(scheduler.aexecute_rule("r", "eslint"))
        second = asyncio.create_task(scheduler.aexecute_rule("r", "eslint"))
        await asyncio.sleep(0.01)
        assert scheduler.in_flight_keys() == [("r", "eslint")]

        runner.gate.set()
        a, b = await asyncio.gather(first, second)

        assert a is b
        assert runner.calls == [("r", "eslint")]
        assert len(storage.rule_checks) == 1

    @pytest.mark.asyncio()
    async def test_distinct_keys_run_separately(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner()
        scheduler = RuleScheduler(storage, runner)
        await asyncio.gather(
            scheduler.aexecute_rule("a", "eslint"),
            scheduler.aexecute_rule("b", "eslint"),
        )
        assert sorted(runner.calls) == [("a", "eslint"), ("b", "eslint")]

    @pytest.mark.asyncio()
    async def test_cancelled_caller_does_not_cancel_shared_run(
        self, storage: InMemoryViolationStorage
    ) -> None:
        runner = _MockRunner(gated=True)
        scheduler = RuleScheduler(storage, runner)

        waiter = asyncio.create_task(scheduler.aexecute_rule("r", "eslint"))
        await asyncio.sleep(0.01)
        waiter.cancel()
        await asyncio.sleep(0)
        assert scheduler.active_check_count == 1

        runner.gate.set()
        await scheduler.adrain()
        assert scheduler.active_check_count == 0
        assert storage.rule_checks[1].status is RuleCheckStatus.COMPLETED


class TestExecuteNextRules:
    @pytest.mark.asyncio()
    async def test_fills_available_slots(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner()
        scheduler = RuleScheduler(storage, runner, PollingConfig(max_concurrent_checks=2))
        for rule in ("a", "b", "c"):
            await scheduler.aschedule_rule(rule, "eslint")

        results = await scheduler.aexecute_next_rules()
        assert len(results) == 2

        # the remaining rule is still due; the first two are not
        results = await scheduler.aexecute_next_rules()
        assert len(results) == 1
        assert len(runner.calls) == 3

    @pytest.mark.asyncio()
    async def test_no_slots(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner(gated=True)
        scheduler = RuleScheduler(storage, runner, PollingConfig(max_concurrent_checks=1))
        await scheduler.aschedule_rule("busy", "eslint")
        await scheduler.aschedule_rule("waiting", "eslint")

        busy = asyncio.create_task(scheduler.aexecute_rule("busy", "eslint"))
        await asyncio.sleep(0.01)
        assert await scheduler.aexecute_next_rules() == []

        runner.gate.set()
        await busy

    @pytest.mark.asyncio()
    async def test_zero_limit_runs_nothing(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner()
        scheduler = RuleScheduler(storage, runner, PollingConfig(max_concurrent_checks=5))
        await scheduler.aschedule_rule("r", "eslint")

        assert await scheduler.aexecute_next_rules(0) == []
        assert runner.calls == []
        assert len(await scheduler.aexecute_next_rules()) == 1

    @pytest.mark.asyncio()
    async def test_rejected_execution_published(self) -> None:
        storage = _BrokenStartStorage()
        bus = EventBus()
        failures: list[RuleFailed] = []
        bus.subscribe(RuleFailed, failures.append)
        scheduler = RuleScheduler(storage, _MockRunner(), event_bus=bus)
        await scheduler.aschedule_rule("r", "eslint")

        assert await scheduler.aexecute_next_rules() == []
        assert [f.error for f in failures] == ["storage offline"]

    @pytest.mark.asyncio()
    async def test_nothing_due(self, storage: InMemoryViolationStorage) -> None:
        assert await RuleScheduler(storage, _MockRunner()).aexecute_next_rules() == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_pause_requires_running(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage)
        with pytest.raises(SchedulerError, match="not running"):
            scheduler.pause()
        with pytest.raises(SchedulerError, match="not running"):
            scheduler.resume()

    @pytest.mark.asyncio()
    async def test_start_pause_resume_stop(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage, _MockRunner())
        await scheduler.astart()
        await scheduler.astart()
        assert scheduler.is_running()

        scheduler.pause()
        assert scheduler.is_paused
        assert not scheduler.is_running()

        scheduler.resume()
        scheduler.resume()
        assert scheduler.is_running()

        await scheduler.astop()
        await scheduler.astop()
        assert not scheduler.is_running()

    @pytest.mark.asyncio()
    async def test_stop_waits_for_in_flight(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner(gated=True)
        scheduler = RuleScheduler(storage, runner)
        await scheduler.astart()
        keys = [("a", "eslint"), ("b", "eslint"), ("a", "typescript")]
        checks = [asyncio.create_task(scheduler.aexecute_rule(r, e)) for r, e in keys]
        await asyncio.sleep(0.01)
        assert scheduler.active_check_count == len(keys)

        stopping = asyncio.create_task(scheduler.astop())
        await asyncio.sleep(0.01)
        assert not stopping.done()

        runner.gate.set()
        await stopping
        assert scheduler.active_check_count == 0
        assert not scheduler.is_running()
        results = await asyncio.gather(*checks)
        assert [(r.rule, r.engine) for r in results] == keys
        assert all(r.success for r in results)

    @pytest.mark.asyncio()
    async def test_poll_loop_runs_due_rules(self, storage: InMemoryViolationStorage) -> None:
        bus = EventBus()
        cycles: list[CycleCompleted] = []
        bus.subscribe(CycleCompleted, cycles.append)
        runner = _MockRunner()
        scheduler = RuleScheduler(
            storage, runner, PollingConfig(poll_interval_ms=10), event_bus=bus
        )
        await scheduler.aschedule_rule("r", "eslint")

        await scheduler.astart()
        for _ in range(100):
            if cycles:
                break
            await asyncio.sleep(0.01)
        await scheduler.astop()

        assert runner.calls == [("r", "eslint")]
        assert len(cycles) == 1
        assert [m.note for m in storage.metrics] == ["rules: 1"]

    @pytest.mark.asyncio()
    async def test_paused_loop_skips_cycles(self, storage: InMemoryViolationStorage) -> None:
        runner = _MockRunner()
        scheduler = RuleScheduler(storage, runner, PollingConfig(poll_interval_ms=10))
        await scheduler.aschedule_rule("r", "eslint")

        await scheduler.astart()
        scheduler.pause()
        await asyncio.sleep(0.05)
        await scheduler.astop()

        assert runner.calls == []


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    def test_setters_validate(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage)
        with pytest.raises(ValidationError):
            scheduler.set_default_frequency(999)
        with pytest.raises(ValidationError):
            scheduler.set_max_concurrent_checks(0)

        scheduler.set_default_frequency(1_000)
        scheduler.set_max_concurrent_checks(10)
        assert scheduler.config.default_frequency_ms == 1_000
        assert scheduler.config.max_concurrent_checks == 10

    def test_apply_config(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage)
        config = PollingConfig(poll_interval_ms=50)
        scheduler.apply_config(config)
        assert scheduler.config is config

    @pytest.mark.asyncio()
    async def test_set_runner(self, storage: InMemoryViolationStorage) -> None:
        scheduler = RuleScheduler(storage)
        scheduler.set_runner(_MockRunner())
        assert (await scheduler.aexecute_rule("r", "eslint")).success
