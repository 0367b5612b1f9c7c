"""Domain model for a single static-analysis finding."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Severity(StrEnum):
    """Severity of a violation, ordered from most to least severe."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank (error < warn < info)."""
        return SEVERITY_RANK[self.value]


SEVERITY_RANK: dict[str, int] = {"error": 0, "warn": 1, "info": 2}

# Unknown severities sort after every known one
UNKNOWN_SEVERITY_RANK = len(SEVERITY_RANK)


def severity_rank(severity: str) -> int:
    """Return the sort rank of a raw severity string."""
    return SEVERITY_RANK.get(severity, UNKNOWN_SEVERITY_RANK)


@dataclass(frozen=True, slots=True)
class Violation:
    """One finding produced by an analysis engine.

    Instances are immutable. Enum-like fields (``severity``, ``category``,
    ``source``) are kept as plain strings so a malformed record coming from
    an engine can still be represented and then rejected by the validator.

    Attributes
    ----------
    file : str
        Path of the file the finding refers to.
    line : int | None
        1-based line number, when known.
    column : int | None
        0-based column, when known.
    code : str
        Raw snippet or identifier the engine reported.
    category : str
        Engine-specific category tag.
    severity : str
        One of ``error``, ``warn``, ``info``.
    source : str
        Identifier of the engine that produced the finding.
    rule : str | None
        Rule id, when the engine has one.
    message : str
        Human-readable description.
    fix_suggestion : str | None
        Optional remediation hint.
    """

    file: str
    message: str = ""
    line: int | None = None
    column: int | None = None
    code: str = ""
    category: str = ""
    severity: str = ""
    source: str = ""
    rule: str | None = None
    fix_suggestion: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Violation:
        """Build a violation from an engine's raw record.

        Accepts both ``fix_suggestion`` and ``fixSuggestion`` keys; missing
        string fields become empty strings so validation can report them.
        """
        fix = data.get("fix_suggestion", data.get("fixSuggestion"))
        return cls(
            file=data.get("file") or "",
            message=data.get("message") or "",
            line=data.get("line"),
            column=data.get("column"),
            code=data.get("code") or "",
            category=data.get("category") or "",
            severity=data.get("severity") or "",
            source=data.get("source") or "",
            rule=data.get("rule"),
            fix_suggestion=fix,
        )

    @property
    def location(self) -> str:
        """``file:line`` string used in logs and error messages."""
        return f"{self.file}:{self.line if self.line is not None else '?'}"
