"""codewatch - multi-engine code-quality aggregation and watch mode.

Runs several static-analysis engines over a code base, merges and
deduplicates their findings, tracks each violation across cycles and keeps
re-checking on a schedule while a display reads consistent snapshots.
"""

try:
    from importlib.metadata import version

    __version__ = version("codewatch")
except Exception:
    __version__ = "0.0.0.dev0"  # Fallback for development installs

from codewatch.kernel.config import CodewatchConfig, load_config
from codewatch.kernel.domain import OrchestratorResult, Violation, WatchPhase
from codewatch.kernel.exceptions import CodewatchError
from codewatch.kernel.orchestration.events import EventBus
from codewatch.kernel.orchestration.orchestrator import Orchestrator
from codewatch.kernel.orchestration.orchestrator_factory import (
    OrchestratorFactory,
    create_orchestrator,
)
from codewatch.kernel.ports import Engine, ViolationStorage
from codewatch.stdlib.adapters.memory import InMemoryViolationStorage

__all__ = [
    "CodewatchConfig",
    "CodewatchError",
    "Engine",
    "EventBus",
    "InMemoryViolationStorage",
    "Orchestrator",
    "OrchestratorFactory",
    "OrchestratorResult",
    "Violation",
    "ViolationStorage",
    "WatchPhase",
    "create_orchestrator",
    "load_config",
    "__version__",
]
