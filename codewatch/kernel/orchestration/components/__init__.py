"""Orchestrator components."""

from codewatch.kernel.orchestration.components.engine_runner import EngineRunner
from codewatch.kernel.orchestration.components.rule_runner import EngineRuleRunner

__all__ = ["EngineRuleRunner", "EngineRunner"]
