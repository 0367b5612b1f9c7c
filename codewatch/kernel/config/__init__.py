"""Configuration models and loader."""

from codewatch.kernel.config.loader import ConfigLoader, clear_config_cache, load_config
from codewatch.kernel.config.models import (
    CodewatchConfig,
    CrossoverConfig,
    DedupStrategy,
    DeduplicationConfig,
    EngineConfig,
    LoggingConfig,
    PollingConfig,
    TrackerConfig,
    WatchConfig,
)

__all__ = [
    "CodewatchConfig",
    "ConfigLoader",
    "CrossoverConfig",
    "DedupStrategy",
    "DeduplicationConfig",
    "EngineConfig",
    "LoggingConfig",
    "PollingConfig",
    "TrackerConfig",
    "WatchConfig",
    "clear_config_cache",
    "load_config",
]
