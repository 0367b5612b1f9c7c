"""Crossover detection between the compiler and the linter.

A crossover is a place where two sources report the same problem: linter
rules that re-implement type checking, or both sources flagging the same
location. Warnings are advisory unless the overlap reaches the configured
critical threshold.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from codewatch.kernel.config.models import CrossoverConfig
from codewatch.kernel.domain.results import CrossoverWarning, CrossoverWarningType
from codewatch.kernel.logging import get_logger

if TYPE_CHECKING:
    from codewatch.kernel.domain.results import EngineResult
    from codewatch.kernel.domain.violation import Violation

logger = get_logger(__name__)

# Linter rules that need full type information and duplicate compiler checks
TYPE_AWARE_LINT_RULES = frozenset({
    "@typescript-eslint/explicit-function-return-type",
    "@typescript-eslint/explicit-module-boundary-types",
    "@typescript-eslint/no-explicit-any",
    "@typescript-eslint/no-implicit-any-catch",
    "@typescript-eslint/strict-boolean-expressions",
    "@typescript-eslint/prefer-includes",
    "@typescript-eslint/prefer-string-starts-ends-with",
    "@typescript-eslint/prefer-readonly",
    "@typescript-eslint/prefer-readonly-parameter-types",
    "@typescript-eslint/require-array-sort-compare",
    "@typescript-eslint/restrict-plus-operands",
    "@typescript-eslint/restrict-template-expressions",
    "@typescript-eslint/unbound-method",
    "@typescript-eslint/prefer-reduce-type-parameter",
    "@typescript-eslint/prefer-return-this-type",
    "@typescript-eslint/promise-function-async",
    "@typescript-eslint/require-await",
    "@typescript-eslint/return-await",
    "@typescript-eslint/no-base-to-string",
    "@typescript-eslint/no-confusing-void-expression",
    "@typescript-eslint/no-meaningless-void-operator",
    "@typescript-eslint/no-unnecessary-boolean-literal-compare",
    "@typescript-eslint/no-unnecessary-condition",
    "@typescript-eslint/no-unnecessary-qualifier",
    "@typescript-eslint/no-unnecessary-type-arguments",
    "@typescript-eslint/no-unnecessary-type-assertion",
    "@typescript-eslint/no-unnecessary-type-constraint",
    "@typescript-eslint/non-nullable-type-assertion-style",
    "@typescript-eslint/prefer-for-of",
    "@typescript-eslint/prefer-function-type",
    "@typescript-eslint/prefer-literal-enum-member",
    "@typescript-eslint/prefer-namespace-keyword",
    "@typescript-eslint/prefer-nullish-coalescing",
    "@typescript-eslint/prefer-optional-chain",
})

LEGACY_TYPE_RULE_CATEGORY = "legacy-type-rule"

OPTIMIZATION_SUGGESTIONS: tuple[str, ...] = (
    "Linter focus: code quality, style and architecture rules",
    "Compiler focus: all type safety (strict mode, noImplicitAny, strictNullChecks)",
    "Performance: disable type-aware linter rules for a much faster lint pass",
    "Configuration: use the TypeScript linter plugin for syntax rules only",
    "Monitoring: keep crossover detection enabled to maintain the separation",
)


class CrossoverDetector:
    """Detects overlapping findings between the compiler and the linter.

    Parameters
    ----------
    config : CrossoverConfig | None
        Detection settings; defaults to ``CrossoverConfig()``.
    compiler_source : str
        Source id of the type checker.
    linter_source : str
        Source id (and engine name) of the linter.
    """

    def __init__(
        self,
        config: CrossoverConfig | None = None,
        compiler_source: str = "typescript",
        linter_source: str = "eslint",
    ) -> None:
        self.config = config or CrossoverConfig()
        self._compiler = compiler_source
        self._linter = linter_source

    def detect(
        self,
        violations: Sequence[Violation],
        engine_results: Sequence[EngineResult] = (),
    ) -> tuple[CrossoverWarning, ...]:
        """Inspect a merged result set and return the crossover warnings."""
        if not self.config.enabled:
            return ()

        lint_violations = [v for v in violations if v.source == self._linter]
        warnings: list[CrossoverWarning] = []

        if self.config.warn_on_type_aware_rules:
            warning = self._type_aware_rules(lint_violations)
            if warning is not None:
                warnings.append(warning)

        if self.config.warn_on_duplicate_violations:
            warning = self._duplicate_locations(violations, lint_violations)
            if warning is not None:
                warnings.append(warning)

        warnings.extend(self._configuration_conflicts(lint_violations, engine_results))
        return tuple(warnings)

    @staticmethod
    def has_critical_issues(warnings: Sequence[CrossoverWarning]) -> bool:
        """Return ``True`` if any warning is critical."""
        return any(w.is_critical for w in warnings)

    @staticmethod
    def get_optimization_suggestions() -> list[str]:
        """General advice for splitting work between compiler and linter."""
        return list(OPTIMIZATION_SUGGESTIONS)

    def log_warnings(self, warnings: Sequence[CrossoverWarning]) -> None:
        """Write a crossover report to the log."""
        if not warnings:
            logger.debug("No crossover issues detected")
            return
        for w in warnings:
            log = logger.error if w.is_critical else logger.warning
            log(
                "Crossover ({type}): {message}. {suggestion}",
                type=w.type.value,
                message=w.message,
                suggestion=w.suggestion,
            )

    def _type_aware_rules(self, lint_violations: Sequence[Violation]) -> CrossoverWarning | None:
        rules = sorted({v.rule for v in lint_violations if v.rule in TYPE_AWARE_LINT_RULES})
        if not rules:
            return None
        return CrossoverWarning(
            type=CrossoverWarningType.TYPE_AWARE_RULE,
            message=(
                f"Found {len(rules)} type-aware linter rule(s) that duplicate "
                "compiler functionality"
            ),
            details=(
                f"Type-aware rules detected: {', '.join(rules)}. These rules need full "
                "type information and slow the linter down while repeating compiler checks."
            ),
            suggestion=(
                "Disable these rules in the linter and rely on strict compiler settings "
                "for type safety."
            ),
            affected_rules=tuple(rules),
        )

    def _duplicate_locations(
        self, violations: Sequence[Violation], lint_violations: Sequence[Violation]
    ) -> CrossoverWarning | None:
        compiler_locations = {(v.file, v.line) for v in violations if v.source == self._compiler}
        overlap: list[tuple[str, int | None]] = []
        for v in lint_violations:
            location = (v.file, v.line)
            if location in compiler_locations and location not in overlap:
                overlap.append(location)
        if not overlap:
            return None

        threshold = self.config.critical_overlap_threshold
        critical = threshold is not None and len(overlap) >= threshold
        files = tuple(dict.fromkeys(file for file, _ in overlap))
        return CrossoverWarning(
            type=CrossoverWarningType.DUPLICATE_VIOLATION,
            message=(
                f"Found {len(overlap)} location(s) with violations from both "
                f"{self._compiler} and {self._linter}"
            ),
            details=(
                "Both sources report issues at the same locations, which suggests "
                "overlapping responsibilities."
            ),
            suggestion=(
                "Keep the linter on code quality and let the compiler handle type safety."
            ),
            severity="error" if critical else "warn",
            affected_files=files,
        )

    def _configuration_conflicts(
        self,
        lint_violations: Sequence[Violation],
        engine_results: Sequence[EngineResult],
    ) -> list[CrossoverWarning]:
        warnings: list[CrossoverWarning] = []

        legacy = [v for v in lint_violations if v.category == LEGACY_TYPE_RULE_CATEGORY]
        if legacy:
            rules = tuple(dict.fromkeys(v.rule for v in legacy if v.rule))
            warnings.append(
                CrossoverWarning(
                    type=CrossoverWarningType.CONFIGURATION_CONFLICT,
                    message=f"Found {len(legacy)} violations from legacy type-aware linter rules",
                    details=(
                        f"Rules like {', '.join(rules) or 'unknown'} duplicate compiler "
                        "functionality and slow the linter down."
                    ),
                    suggestion="Move these checks to strict compiler configuration.",
                    affected_rules=rules,
                )
            )

        lint_time = next(
            (r.execution_time_ms for r in engine_results if r.engine_name == self._linter), 0.0
        )
        if lint_time > self.config.slow_engine_threshold_ms:
            warnings.append(
                CrossoverWarning(
                    type=CrossoverWarningType.CONFIGURATION_CONFLICT,
                    message=(
                        f"Linter execution time is high ({round(lint_time / 1000)}s), "
                        "suggesting type-aware rules"
                    ),
                    details=(
                        "A slow lint pass usually means rules that require full program "
                        "type analysis."
                    ),
                    suggestion=(
                        "Disable type-aware linter rules for faster feedback and let the "
                        "compiler handle type checking."
                    ),
                )
            )
        return warnings
