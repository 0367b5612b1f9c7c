"""Engine runner for individual engine invocations.

Runs one engine with a timeout and converts its outcome into an
``EngineResult``. Failures and timeouts are captured in the result so that
one broken engine never aborts an analysis cycle.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from codewatch.kernel.domain.results import EngineResult
from codewatch.kernel.domain.violation import Violation
from codewatch.kernel.exceptions import EngineExecutionError, EngineTimeoutError
from codewatch.kernel.logging import get_logger
from codewatch.kernel.orchestration.events import EngineFailed
from codewatch.kernel.utils.timer import Timer

if TYPE_CHECKING:
    from codewatch.kernel.orchestration.events import EventBus
    from codewatch.kernel.ports.engine import Engine

logger = get_logger(__name__)

DEFAULT_ENGINE_TIMEOUT = 120.0


def normalize_violations(engine_name: str, raw: Any) -> tuple[Violation, ...]:
    """Convert engine output into ``Violation`` records.

    Mappings are converted with ``Violation.from_mapping``; records without
    a ``source`` are attributed to the engine that produced them.
    """
    if raw is None:
        return ()
    violations: list[Violation] = []
    for item in raw:
        if isinstance(item, Violation):
            v = item
        elif isinstance(item, Mapping):
            v = Violation.from_mapping(item)
        else:
            raise TypeError(
                f"Engine '{engine_name}' returned {type(item).__name__}, "
                "expected Violation or mapping"
            )
        if not v.source:
            v = dataclasses.replace(v, source=engine_name)
        violations.append(v)
    return tuple(violations)


def _describe_failure(error: EngineExecutionError) -> str:
    """Failure text without the engine name, which is reported separately."""
    if isinstance(error, EngineTimeoutError):
        return f"timed out after {error.timeout:.1f}s"
    return str(error.original_error) or type(error.original_error).__name__


class EngineRunner:
    """Executes engines with timeout handling and fault isolation.

    Parameters
    ----------
    default_timeout : float
        Seconds allowed when no per-engine timeout is given.
    event_bus : EventBus | None
        Receives an ``EngineFailed`` event for every failed run.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_ENGINE_TIMEOUT,
        event_bus: EventBus | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self._event_bus = event_bus

    async def arun(
        self,
        name: str,
        engine: Engine,
        target_path: str,
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> EngineResult:
        """Run ``engine`` once and return its result.

        Never raises for engine faults; ``asyncio.CancelledError`` is
        propagated so callers can cancel in-flight work.
        """
        timer = Timer()
        try:
            violations = await self.aexecute(name, engine, target_path, options, timeout)
        except EngineExecutionError as e:
            logger.warning(
                "Engine '{engine}' failed after {ms}ms: {error}",
                engine=name,
                ms=timer.duration_str,
                error=e,
            )
            error = _describe_failure(e)
            if self._event_bus is not None:
                await self._event_bus.anotify(EngineFailed(engine_name=name, error=error))
            return EngineResult(
                engine_name=name,
                execution_time_ms=timer.duration_ms,
                success=False,
                error=error,
                metadata=MappingProxyType({"target_path": target_path, "violations_found": 0}),
            )

        logger.debug(
            "Engine '{engine}' found {count} violations in {ms}ms",
            engine=name,
            count=len(violations),
            ms=timer.duration_str,
        )
        return EngineResult(
            engine_name=name,
            violations=violations,
            execution_time_ms=timer.duration_ms,
            success=True,
            metadata=MappingProxyType({
                "target_path": target_path,
                "violations_found": len(violations),
            }),
        )

    async def aexecute(
        self,
        name: str,
        engine: Engine,
        target_path: str,
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> tuple[Violation, ...]:
        """Run ``engine`` and return its normalized violations.

        Raises
        ------
        EngineTimeoutError
            If the engine does not finish within the timeout.
        EngineExecutionError
            If the engine raises or returns malformed output.
        """
        effective_timeout = timeout or self.default_timeout
        try:
            async with asyncio.timeout(effective_timeout):
                raw = await engine.aanalyze(target_path, dict(options or {}))
            return normalize_violations(name, raw)
        except TimeoutError as e:
            raise EngineTimeoutError(name, effective_timeout, e) from e
        except Exception as e:
            raise EngineExecutionError(name, e) from e
