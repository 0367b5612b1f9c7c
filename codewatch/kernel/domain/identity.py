"""Stable identity hashing for violations.

The identity hash recognizes "the same" violation across watch cycles. It is
derived only from ``(file, line, rule, message)``; severity, category and
source do not change a violation's identity.

The fields are JSON-encoded before hashing so field boundaries stay
unambiguous and ``None`` never collides with an empty string.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codewatch.kernel.domain.violation import Violation

IdentityKey = tuple[str, int | None, str | None, str]


def identity_key(violation: Violation) -> IdentityKey:
    """Return the ``(file, line, rule, message)`` tuple identifying a violation."""
    return (violation.file, violation.line, violation.rule, violation.message)


def hash_identity(key: IdentityKey) -> str:
    """Compute the SHA-256 hex digest of an identity tuple.

    Examples
    --------
    >>> hash_identity(("a.ts", 1, "R1", "M")) == hash_identity(("a.ts", 1, "R1", "M"))
    True
    >>> hash_identity(("a.ts", 1, "R1", "M")) == hash_identity(("a.ts", 2, "R1", "M"))
    False
    """
    payload = json.dumps(list(key), ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_violation_hash(violation: Violation) -> str:
    """Compute the identity hash of a violation (uncached)."""
    return hash_identity(identity_key(violation))
