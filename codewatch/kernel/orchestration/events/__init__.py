"""Typed events and the in-process event bus."""

from codewatch.kernel.orchestration.events.bus import EventBus, LoggingErrorHandler
from codewatch.kernel.orchestration.events.events import (
    AnalysisCompleted,
    AnalysisStarted,
    CycleCompleted,
    EngineFailed,
    Event,
    InvalidTransitionAttempted,
    RuleCompleted,
    RuleFailed,
    RuleStarted,
    StateChanged,
    WatchCycleCompleted,
    WatchError,
    WatchStarted,
    WatchStopped,
)

__all__ = [
    "AnalysisCompleted",
    "AnalysisStarted",
    "CycleCompleted",
    "EngineFailed",
    "Event",
    "EventBus",
    "InvalidTransitionAttempted",
    "LoggingErrorHandler",
    "RuleCompleted",
    "RuleFailed",
    "RuleStarted",
    "StateChanged",
    "WatchCycleCompleted",
    "WatchError",
    "WatchStarted",
    "WatchStopped",
]
