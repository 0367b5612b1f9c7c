"""Validation of raw violation records."""

from codewatch.kernel.validation.violation_validator import ValidationResult, ViolationValidator

__all__ = ["ValidationResult", "ViolationValidator"]
