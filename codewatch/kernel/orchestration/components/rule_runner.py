"""Bridge between scheduled rule checks and the engine contract.

A scheduled check for ``(rule, engine)`` runs the real engine restricted to
that rule (``options={"rules": [rule]}``) and keeps only the findings that
carry the rule id.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from codewatch.kernel.domain.rule_schedule import RuleExecution
from codewatch.kernel.exceptions import EngineExecutionError
from codewatch.kernel.orchestration.components.engine_runner import EngineRunner

if TYPE_CHECKING:
    from codewatch.kernel.ports.engine import Engine


class EngineRuleRunner:
    """Runs one rule through its engine.

    Parameters
    ----------
    engines : Mapping[str, Engine]
        Live engine registry; engines added later are picked up.
    target_path : Callable[[], str]
        Returns the path to analyze at call time.
    engine_runner : EngineRunner | None
        Applies the timeout; defaults to a plain ``EngineRunner``.
    timeout_for : Callable[[str], float | None] | None
        Per-engine timeout lookup.
    """

    def __init__(
        self,
        engines: Mapping[str, Engine],
        target_path: Callable[[], str],
        engine_runner: EngineRunner | None = None,
        timeout_for: Callable[[str], float | None] | None = None,
    ) -> None:
        self._engines = engines
        self._target_path = target_path
        self._runner = engine_runner or EngineRunner()
        self._timeout_for = timeout_for

    async def arun_rule(self, rule: str, engine: str) -> RuleExecution:
        """Run ``rule`` on ``engine``.

        ``files_checked`` counts the distinct files in the engine's output,
        since the engine contract does not report scanned files.

        Raises
        ------
        EngineExecutionError
            If the engine is unknown, fails or times out.
        """
        instance = self._engines.get(engine)
        if instance is None:
            raise EngineExecutionError(engine, LookupError(f"no engine registered as '{engine}'"))

        timeout = self._timeout_for(engine) if self._timeout_for else None
        found = await self._runner.aexecute(
            engine, instance, self._target_path(), {"rules": [rule]}, timeout
        )
        matching = tuple(v for v in found if v.rule == rule)
        return RuleExecution(
            violations=matching,
            files_checked=len({v.file for v in found}),
            files_with_violations=len({v.file for v in matching}),
        )
