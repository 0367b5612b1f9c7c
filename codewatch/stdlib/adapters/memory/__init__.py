"""Memory adapter implementations for codewatch.

- InMemoryViolationStorage: dictionary-backed ``ViolationStorage``
"""

from .violation_storage import (
    InMemoryViolationStorage,
    PerformanceMetric,
    RuleCheckRecord,
    RuleCheckStatus,
    StoredViolation,
)

__all__ = [
    "InMemoryViolationStorage",
    "PerformanceMetric",
    "RuleCheckRecord",
    "RuleCheckStatus",
    "StoredViolation",
]
