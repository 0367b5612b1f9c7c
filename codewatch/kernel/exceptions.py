"""Core exception hierarchy for codewatch.

All codewatch-specific exceptions inherit from CodewatchError so callers can
catch a single base class. Most faults raised inside an analysis cycle are
isolated and reported (engine results, processing errors, events); only the
exceptions documented on public methods propagate to callers.
"""

from __future__ import annotations

# ============================================================================
# Base Exception
# ============================================================================


class CodewatchError(Exception):
    """Base exception for all codewatch errors.

    Catch this to handle all codewatch-specific errors.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(CodewatchError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("codewatch.yaml", "expected 'kind: Config'")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(CodewatchError):
    """Raised when a configuration value or argument fails validation.

    Malformed violation records are never raised as ``ValidationError``;
    the tracker reports them in ``ProcessingResult.errors`` instead.

    Examples
    --------
    Example usage::

        raise ValidationError("default_frequency_ms", "must be >= 1000", value=10)
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Engine Errors
# ============================================================================


class EngineExecutionError(CodewatchError):
    """Raised when an analysis engine fails.

    The orchestrator captures this inside a failed ``EngineResult``; it only
    escapes from ``EngineRunner.aexecute`` and scheduled rule checks.
    """

    def __init__(self, engine_name: str, original_error: BaseException) -> None:
        self.engine_name = engine_name
        self.original_error = original_error
        super().__init__(f"Engine '{engine_name}' failed: {original_error}")


class EngineTimeoutError(EngineExecutionError):
    """Raised when an engine exceeds its timeout."""

    def __init__(self, engine_name: str, timeout: float, original_error: TimeoutError) -> None:
        self.timeout = timeout
        super().__init__(engine_name, original_error)

    def __str__(self) -> str:
        return f"Engine '{self.engine_name}' timed out after {self.timeout:.1f}s"


# ============================================================================
# Analysis Errors
# ============================================================================


class CrossoverConflictError(CodewatchError):
    """Raised when critical crossover warnings are found and the cycle must fail.

    Attributes
    ----------
    warnings : tuple
        The critical ``CrossoverWarning`` records that triggered the failure.
    """

    def __init__(self, warnings: tuple = ()) -> None:
        self.warnings = tuple(warnings)
        detail = "; ".join(w.message for w in self.warnings) if self.warnings else "no details"
        super().__init__(f"Critical crossover conflict between analysis sources: {detail}")


class PersistenceError(CodewatchError):
    """Raised when the storage collaborator fails to persist data."""

    def __init__(self, operation: str, original_error: BaseException) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Storage operation '{operation}' failed: {original_error}")


# ============================================================================
# Lifecycle Errors
# ============================================================================


class InvalidTransitionError(CodewatchError):
    """Raised when a watch-state transition is not allowed.

    ``WatchStateManager.transition`` returns ``False`` instead of raising;
    ``WatchStateManager.ensure_transition`` raises this error.
    """

    def __init__(self, from_phase: str, to_phase: str) -> None:
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Invalid state transition: {from_phase} -> {to_phase}")


class SchedulerError(CodewatchError):
    """Raised when the rule scheduler is used in an invalid lifecycle state."""

    pass


class OrchestratorError(CodewatchError):
    """Raised for orchestrator misuse (e.g. starting watch mode twice)."""

    pass
