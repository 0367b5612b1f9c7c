"""Domain models for the watch-mode state machine.

Used by :class:`~codewatch.stdlib.lib.watch_state.WatchStateManager`.
The transition table is fixed; ``shutdown`` is terminal.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class WatchPhase(StrEnum):
    """Lifecycle phase of a watch session."""

    INITIALIZING = "initializing"
    ANALYZING = "analyzing"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"
    SHUTDOWN = "shutdown"


WATCH_TRANSITIONS: Mapping[WatchPhase, frozenset[WatchPhase]] = MappingProxyType({
    WatchPhase.INITIALIZING: frozenset({
        WatchPhase.ANALYZING,
        WatchPhase.ERROR,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.ANALYZING: frozenset({
        WatchPhase.READY,
        WatchPhase.ERROR,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.READY: frozenset({
        WatchPhase.RUNNING,
        WatchPhase.ANALYZING,
        WatchPhase.PAUSED,
        WatchPhase.ERROR,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.RUNNING: frozenset({
        WatchPhase.ANALYZING,
        WatchPhase.PAUSED,
        WatchPhase.ERROR,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.PAUSED: frozenset({
        WatchPhase.RUNNING,
        WatchPhase.ANALYZING,
        WatchPhase.ERROR,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.ERROR: frozenset({
        WatchPhase.RUNNING,
        WatchPhase.ANALYZING,
        WatchPhase.SHUTDOWN,
    }),
    WatchPhase.SHUTDOWN: frozenset(),
})

# Phases from which a new analysis may start
ANALYSIS_START_PHASES = frozenset({WatchPhase.INITIALIZING, WatchPhase.READY, WatchPhase.RUNNING})

# Phases in which the display may read state
DISPLAY_PHASES = frozenset({WatchPhase.READY, WatchPhase.RUNNING})


def is_valid_transition(from_phase: WatchPhase, to_phase: WatchPhase) -> bool:
    """Check a transition against the fixed table."""
    return to_phase in WATCH_TRANSITIONS[from_phase]


@dataclass(frozen=True, slots=True)
class WatchStateData:
    """Immutable snapshot of a watch session's state.

    ``analysis_in_progress`` mirrors ``phase == ANALYZING`` and is checked
    independently by ``WatchStateManager.validate_state``.
    """

    phase: WatchPhase = WatchPhase.INITIALIZING
    checks_count: int = 0
    session_id: str = ""
    session_start: float = field(default_factory=time.time)
    last_analysis_time: float | None = None
    last_error: str | None = None
    analysis_in_progress: bool = False
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class PhaseTransition:
    """Record of a single phase change."""

    from_phase: WatchPhase
    to_phase: WatchPhase
    timestamp: float = field(default_factory=time.time)
    reason: str | None = None
