"""Tests for the Violation model and identity hashing."""

from __future__ import annotations

import dataclasses
import itertools

import pytest

from codewatch.kernel.domain.identity import compute_violation_hash, hash_identity, identity_key
from codewatch.kernel.domain.violation import Severity, Violation, severity_rank

# ---------------------------------------------------------------------------
# Violation
# ---------------------------------------------------------------------------


class TestViolation:
    def test_defaults(self) -> None:
        v = Violation(file="a.ts")
        assert v.message == ""
        assert v.line is None
        assert v.rule is None
        assert v.fix_suggestion is None

    def test_frozen(self) -> None:
        v = Violation(file="a.ts")
        with pytest.raises(dataclasses.FrozenInstanceError):
            v.file = "b.ts"  # type: ignore[misc]

    def test_from_mapping(self) -> None:
        v = Violation.from_mapping({
            "file": "a.ts",
            "line": 3,
            "message": "M",
            "severity": "warn",
            "source": "eslint",
            "rule": "no-console",
            "fixSuggestion": "remove it",
        })
        assert v.file == "a.ts"
        assert v.line == 3
        assert v.rule == "no-console"
        assert v.fix_suggestion == "remove it"
        assert v.category == ""

    def test_from_mapping_missing_fields_become_empty(self) -> None:
        v = Violation.from_mapping({"message": "x"})
        assert v.file == ""
        assert v.severity == ""

    def test_location(self) -> None:
        assert Violation(file="a.ts", line=4).location == "a.ts:4"
        assert Violation(file="a.ts").location == "a.ts:?"


class TestSeverity:
    def test_rank_order(self) -> None:
        assert Severity.ERROR.rank < Severity.WARN.rank < Severity.INFO.rank

    def test_unknown_sorts_last(self) -> None:
        assert severity_rank("fatal") > severity_rank("info")

    def test_string_values(self) -> None:
        assert Severity.WARN == "warn"


# ---------------------------------------------------------------------------
# Identity hash
# ---------------------------------------------------------------------------


def _generated_violations() -> list[Violation]:
    files = ["a.ts", "b.ts", "src/a.ts", "a|b.ts"]
    lines = [None, 1, 2, 10]
    rules = [None, "", "R1", "R2"]
    messages = ["", "M", "m", "M ", "a|b"]
    return [
        Violation(file=f, line=line, rule=r, message=m)
        for f, line, r, m in itertools.product(files, lines, rules, messages)
    ]


class TestIdentityHash:
    def test_identity_key_fields(self) -> None:
        v = Violation(file="a.ts", line=1, rule="R", message="M", severity="error")
        assert identity_key(v) == ("a.ts", 1, "R", "M")

    def test_deterministic_across_calls(self) -> None:
        for v in _generated_violations():
            assert compute_violation_hash(v) == compute_violation_hash(v)
            assert compute_violation_hash(v) == compute_violation_hash(dataclasses.replace(v))

    def test_distinct_for_every_differing_pair(self) -> None:
        violations = _generated_violations()
        hashes = {compute_violation_hash(v) for v in violations}
        assert len(hashes) == len(violations)

    def test_ignores_non_identity_fields(self) -> None:
        a = Violation(file="a.ts", line=1, rule="R", message="M", severity="error", source="x")
        b = dataclasses.replace(a, severity="info", source="y", category="c", code="z")
        assert compute_violation_hash(a) == compute_violation_hash(b)

    def test_none_and_empty_rule_differ(self) -> None:
        assert hash_identity(("a.ts", 1, None, "M")) != hash_identity(("a.ts", 1, "", "M"))

    def test_separator_in_fields_does_not_collide(self) -> None:
        assert hash_identity(("a|b", 1, "c", "M")) != hash_identity(("a", 1, "b|c", "M"))

    def test_sha256_hex(self) -> None:
        digest = compute_violation_hash(Violation(file="a.ts"))
        assert len(digest) == 64
        int(digest, 16)
