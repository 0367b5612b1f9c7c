"""Port interface for analysis engines.

An engine wraps one external analysis tool (compiler, linter, dead-code
detector...). codewatch never implements engines; it only consumes them
through this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from codewatch.kernel.domain.violation import Violation

RawViolation = Mapping[str, Any]


@runtime_checkable
class Engine(Protocol):
    """Protocol for analysis engines.

    ``aanalyze`` must finish or raise within the timeout the orchestrator
    applies; raising is equivalent to a failed run. Engines may return
    ``Violation`` instances or raw mappings with the same field names.

    Recognised options
    ------------------
    ``rules``
        Sequence of rule ids to restrict the run to (scheduled rule checks).
    """

    @abstractmethod
    async def aanalyze(
        self, target_path: str, options: Mapping[str, Any]
    ) -> Sequence[Violation | RawViolation]:
        """Analyze ``target_path`` and return the findings."""
        ...
