"""Structural validation and sanitization of raw violation records.

Validation never raises for a malformed record: it returns a
``ValidationResult`` whose ``errors`` reject the record and whose
``warnings`` only annotate it.

Examples
--------
>>> from codewatch.kernel.domain.violation import Violation
>>> validator = ViolationValidator()
>>> result = validator.validate(
...     Violation(file="", message="x", category="c", severity="error", source="typescript")
... )
>>> result.is_valid
False
>>> result.errors
('File path is required',)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from codewatch.kernel.domain.violation import SEVERITY_RANK

if TYPE_CHECKING:
    from codewatch.kernel.domain.violation import Violation

DEFAULT_KNOWN_SOURCES = frozenset({
    "typescript",
    "eslint",
    "unused-exports",
    "zod-detection",
    "archaeology",
})
DEFAULT_FILE_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"})
DEFAULT_MAX_MESSAGE_LENGTH = 500

_VALID_SEVERITIES = tuple(SEVERITY_RANK)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating one violation."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ViolationValidator:
    """Validates and sanitizes violations.

    Parameters
    ----------
    known_sources : Iterable[str] | None
        Engine identifiers that do not trigger an "unusual source" warning.
    file_extensions : Iterable[str] | None
        Extensions that do not trigger a file-type warning.
    max_message_length : int
        Messages longer than this trigger a warning.
    """

    def __init__(
        self,
        known_sources: Iterable[str] | None = None,
        file_extensions: Iterable[str] | None = None,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self._known_sources = (
            frozenset(known_sources) if known_sources is not None else DEFAULT_KNOWN_SOURCES
        )
        self._file_extensions = (
            frozenset(e.lower() for e in file_extensions)
            if file_extensions is not None
            else DEFAULT_FILE_EXTENSIONS
        )
        self._max_message_length = max_message_length

    def validate(self, violation: Violation) -> ValidationResult:
        """Check required fields, numeric ranges and enum membership."""
        errors: list[str] = []
        warnings: list[str] = []

        if _is_blank(violation.file):
            errors.append("File path is required")
        if _is_blank(violation.message):
            errors.append("Message is required")
        if _is_blank(violation.category):
            errors.append("Category is required")
        if _is_blank(violation.severity):
            errors.append("Severity is required")
        if _is_blank(violation.source):
            errors.append("Source is required")

        if violation.line is not None and not (_is_int(violation.line) and violation.line > 0):
            errors.append("Line number must be a positive integer")
        if violation.column is not None and not (
            _is_int(violation.column) and violation.column >= 0
        ):
            errors.append("Column number must be a non-negative integer")

        if not _is_blank(violation.severity) and violation.severity.strip() not in SEVERITY_RANK:
            errors.append(f"Severity must be one of: {', '.join(_VALID_SEVERITIES)}")

        if not _is_blank(violation.source) and violation.source.strip() not in self._known_sources:
            warnings.append(f"Unusual source: {violation.source}")

        if not _is_blank(violation.file):
            suffix = PurePosixPath(violation.file.strip()).suffix.lower()
            if suffix not in self._file_extensions:
                warnings.append(f"Unexpected file type: {violation.file}")

        if isinstance(violation.message, str) and len(violation.message) > self._max_message_length:
            warnings.append(f"Message is very long ({len(violation.message)} characters)")

        return ValidationResult(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    @staticmethod
    def sanitize(violation: Violation) -> Violation:
        """Return a trimmed copy with defaults for empty enum-like fields.

        The input is never modified.
        """

        def _optional(value: str | None) -> str | None:
            if value is None:
                return None
            stripped = value.strip()
            return stripped or None

        return dataclasses.replace(
            violation,
            file=(violation.file or "").strip(),
            message=(violation.message or "").strip(),
            code=(violation.code or "").strip(),
            category=(violation.category or "").strip() or "unknown",
            severity=(violation.severity or "").strip() or "info",
            source=(violation.source or "").strip() or "unknown",
            rule=_optional(violation.rule),
            fix_suggestion=_optional(violation.fix_suggestion),
        )
