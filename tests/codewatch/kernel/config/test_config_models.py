"""Tests for configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from codewatch.kernel.config.models import (
    CodewatchConfig,
    DedupStrategy,
    EngineConfig,
    PollingConfig,
    WatchConfig,
)
from codewatch.kernel.exceptions import ValidationError


class TestDefaults:
    def test_default_engines(self) -> None:
        config = CodewatchConfig()
        assert list(config.engines) == [
            "typescript",
            "eslint",
            "unused-exports",
            "zod-detection",
            "archaeology",
        ]
        assert config.engines["archaeology"].enabled is False
        assert config.engines["eslint"].priority == 2

    def test_section_defaults(self) -> None:
        config = CodewatchConfig()
        assert config.deduplication.strategy is DedupStrategy.EXACT
        assert config.crossover.critical_overlap_threshold is None
        assert config.polling.default_frequency_ms == 30_000
        assert config.watch.interval_ms == 3_000
        assert config.logging.level == "INFO"

    def test_engine_config_fallback(self) -> None:
        assert CodewatchConfig().engine_config("custom") == EngineConfig()


class TestImmutability:
    def test_frozen(self) -> None:
        config = CodewatchConfig()
        with pytest.raises(PydanticValidationError):
            config.target_path = "src"  # type: ignore[misc]

    def test_with_updates_returns_new_snapshot(self) -> None:
        original = PollingConfig()
        updated = original.with_updates(max_concurrent_checks=8)
        assert updated.max_concurrent_checks == 8
        assert original.max_concurrent_checks == 3

    def test_with_updates_nested_model(self) -> None:
        config = CodewatchConfig().with_updates(watch=WatchConfig(interval_ms=50))
        assert config.watch.interval_ms == 50


class TestConstraints:
    def test_frequency_floor(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            PollingConfig().with_updates(default_frequency_ms=999)
        assert exc_info.value.field == "default_frequency_ms"

    def test_concurrency_floor(self) -> None:
        with pytest.raises(ValidationError):
            PollingConfig().with_updates(max_concurrent_checks=0)

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(PydanticValidationError):
            EngineConfig(timeout_seconds=0)

    def test_unknown_strategy(self) -> None:
        with pytest.raises(PydanticValidationError):
            CodewatchConfig.model_validate({"deduplication": {"strategy": "fuzzy"}})

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            WatchConfig().with_updates(debounce=5)
