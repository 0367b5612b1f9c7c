"""Stateful components driven by the orchestrator.

- ViolationTracker: identity hashing, validation and persistence handoff
- RuleScheduler: bounded-concurrency scheduled rule checks
- WatchStateManager: watch-mode finite-state machine
"""

from codewatch.stdlib.lib.rule_scheduler import RuleRunner, RuleScheduler
from codewatch.stdlib.lib.violation_tracker import CacheStats, ViolationDelta, ViolationTracker
from codewatch.stdlib.lib.watch_state import WatchStateManager

__all__ = [
    "CacheStats",
    "RuleRunner",
    "RuleScheduler",
    "ViolationDelta",
    "ViolationTracker",
    "WatchStateManager",
]
