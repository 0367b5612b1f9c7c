"""WatchStateManager lib: the watch-mode finite-state machine.

Serializes "analysis in progress" against "display may read state". Every
phase change is checked against ``WATCH_TRANSITIONS``; a rejected request
returns ``False``, publishes ``InvalidTransitionAttempted`` and leaves the
state untouched.

Readers only ever see frozen ``WatchStateData`` snapshots: the manager
replaces its snapshot on each change instead of mutating it.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from codewatch.kernel.domain.watch_state import (
    ANALYSIS_START_PHASES,
    DISPLAY_PHASES,
    PhaseTransition,
    WatchPhase,
    WatchStateData,
    is_valid_transition,
)
from codewatch.kernel.exceptions import InvalidTransitionError
from codewatch.kernel.logging import get_logger
from codewatch.kernel.orchestration.events import InvalidTransitionAttempted, StateChanged

if TYPE_CHECKING:
    from codewatch.kernel.orchestration.events import EventBus

logger = get_logger(__name__)

# Phases that end an analysis
_IDLE_PHASES = frozenset({
    WatchPhase.READY,
    WatchPhase.RUNNING,
    WatchPhase.ERROR,
    WatchPhase.SHUTDOWN,
})

_PAUSABLE_PHASES = frozenset({WatchPhase.READY, WatchPhase.RUNNING})
_INACTIVE_PHASES = frozenset({WatchPhase.ERROR, WatchPhase.SHUTDOWN})


class WatchStateManager:
    """State machine for one watch session.

    Parameters
    ----------
    event_bus : EventBus | None
        Receives ``StateChanged`` and ``InvalidTransitionAttempted``.
    session_id : str | None
        Identifier of the session; generated when omitted.
    metadata : Mapping[str, Any] | None
        Free-form session metadata, exposed read-only on snapshots.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        session_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self._event_bus = event_bus
        self._state = WatchStateData(
            session_id=session_id or uuid.uuid4().hex[:12],
            metadata=MappingProxyType(dict(metadata or {})),
        )
        self._history: list[PhaseTransition] = []

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(self, to_phase: WatchPhase, reason: str | None = None) -> bool:
        """Move to ``to_phase`` if the transition table allows it.

        Returns
        -------
        bool
            ``True`` if applied, ``False`` if rejected (state unchanged).
        """
        from_phase = self._state.phase
        if not is_valid_transition(from_phase, to_phase):
            logger.debug(
                "Rejected transition {from_phase} -> {to_phase}",
                from_phase=from_phase,
                to_phase=to_phase,
            )
            self._emit(
                InvalidTransitionAttempted(from_phase=from_phase, to_phase=to_phase, reason=reason)
            )
            return False

        changes: dict[str, Any] = {"phase": to_phase}
        if to_phase == WatchPhase.ANALYZING:
            changes["analysis_in_progress"] = True
            changes["last_analysis_time"] = time.time()
        elif to_phase in _IDLE_PHASES:
            changes["analysis_in_progress"] = False
        self._state = replace(self._state, **changes)
        self._history.append(
            PhaseTransition(from_phase=from_phase, to_phase=to_phase, reason=reason)
        )

        logger.debug(
            "Watch state {from_phase} -> {to_phase} ({reason})",
            from_phase=from_phase,
            to_phase=to_phase,
            reason=reason or "unspecified",
        )
        self._emit(StateChanged(from_phase=from_phase, to_phase=to_phase, reason=reason))
        return True

    def ensure_transition(self, to_phase: WatchPhase, reason: str | None = None) -> None:
        """Like ``transition`` but raise on rejection.

        Raises
        ------
        InvalidTransitionError
            If the transition is not in the table.
        """
        from_phase = self._state.phase
        if not self.transition(to_phase, reason):
            raise InvalidTransitionError(from_phase, to_phase)

    def start_analysis(self) -> bool:
        """Enter ``analyzing`` if no analysis is running."""
        if not self.can_start_analysis():
            return False
        return self.transition(WatchPhase.ANALYZING, "analysis_cycle_start")

    def complete_analysis(self) -> bool:
        """Finish the running analysis.

        The first completion stops at ``ready`` (unlocking the initial
        render); later ones continue through ``ready`` to ``running``, since
        ``analyzing -> running`` is not in the table.
        """
        if self._state.phase != WatchPhase.ANALYZING:
            return False
        self._state = replace(self._state, checks_count=self._state.checks_count + 1)
        self.transition(WatchPhase.READY, "analysis_cycle_complete")
        if self._state.checks_count == 1:
            return True
        return self.transition(WatchPhase.RUNNING, "analysis_cycle_complete")

    def handle_analysis_error(self, error: BaseException | str) -> bool:
        """Record ``error`` and move to ``error``."""
        message = str(error)
        self._state = replace(self._state, last_error=message)
        return self.transition(WatchPhase.ERROR, f"analysis_error: {message}")

    def recover(self) -> bool:
        """Leave ``error`` for ``running``."""
        if self._state.phase != WatchPhase.ERROR:
            return False
        return self.transition(WatchPhase.RUNNING, "error_recovery")

    def pause(self) -> bool:
        if self._state.phase not in _PAUSABLE_PHASES:
            return False
        return self.transition(WatchPhase.PAUSED, "user_pause")

    def resume(self) -> bool:
        if self._state.phase != WatchPhase.PAUSED:
            return False
        return self.transition(WatchPhase.RUNNING, "user_resume")

    def shutdown(self, reason: str | None = None) -> bool:
        """Enter the terminal ``shutdown`` phase."""
        return self.transition(WatchPhase.SHUTDOWN, reason or "user_shutdown")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_start_analysis(self) -> bool:
        return (
            self._state.phase in ANALYSIS_START_PHASES and not self._state.analysis_in_progress
        )

    def can_update_display(self) -> bool:
        """True only when the display may read current/baseline state."""
        return self._state.phase in DISPLAY_PHASES and not self._state.analysis_in_progress

    def is_active(self) -> bool:
        return self._state.phase not in _INACTIVE_PHASES

    def is_analyzing(self) -> bool:
        return self._state.analysis_in_progress

    def get_state(self) -> WatchStateData:
        """Return the current immutable snapshot."""
        return self._state

    def get_phase(self) -> WatchPhase:
        return self._state.phase

    def get_checks_count(self) -> int:
        return self._state.checks_count

    @property
    def session_id(self) -> str:
        return self._state.session_id

    def set_session_id(self, session_id: str) -> None:
        self._state = replace(self._state, session_id=session_id)

    def get_transition_history(self) -> tuple[PhaseTransition, ...]:
        return tuple(self._history)

    def get_state_summary(self) -> str:
        """One-line description for logs and debugging.

        Examples
        --------
        >>> WatchStateManager(session_id="s1").get_state_summary()
        'Phase: initializing | Checks: 0 | Analyzing: False | Uptime: 0s'
        """
        state = self._state
        parts = [
            f"Phase: {state.phase}",
            f"Checks: {state.checks_count}",
            f"Analyzing: {state.analysis_in_progress}",
            f"Uptime: {int(time.time() - state.session_start)}s",
        ]
        if state.last_error:
            parts.append(f"Last Error: {state.last_error}")
        return " | ".join(parts)

    def validate_state(self) -> list[str]:
        """Check internal consistency; an empty list means the state is valid."""
        state = self._state
        issues: list[str] = []
        if state.phase == WatchPhase.ANALYZING and not state.analysis_in_progress:
            issues.append("Phase is analyzing but analysis_in_progress is false")
        if state.phase != WatchPhase.ANALYZING and state.analysis_in_progress:
            issues.append("analysis_in_progress is true but phase is not analyzing")
        if state.checks_count < 0:
            issues.append("checks_count cannot be negative")
        now = time.time()
        if state.last_analysis_time is not None and state.last_analysis_time > now:
            issues.append("last_analysis_time is in the future")
        if state.session_start > now:
            issues.append("session_start is in the future")
        return issues

    def _emit(self, event: StateChanged | InvalidTransitionAttempted) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event)
