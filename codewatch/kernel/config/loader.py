"""Configuration loader for codewatch.

Supports two config sources:

1. **kind: Config YAML** (or a plain TOML file), loaded via explicit path or
   the ``CODEWATCH_CONFIG_PATH`` env var.
2. **pyproject.toml [tool.codewatch]**, discovered upward from the working
   directory.

When neither is found the defaults are used. String values may reference
environment variables as ``${VAR}`` or ``${VAR:default}``.
"""

from __future__ import annotations

import os
import re
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from codewatch.kernel.config.models import CodewatchConfig
from codewatch.kernel.exceptions import ConfigurationError
from codewatch.kernel.logging import get_logger

# Type alias for configuration data that can be recursively substituted
ConfigData = str | dict[str, "ConfigData"] | list["ConfigData"] | int | float | bool | None

CONFIG_PATH_ENV = "CODEWATCH_CONFIG_PATH"

# Environment overrides applied after file parsing: env var -> config path
_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "CODEWATCH_TARGET_PATH": ("target_path",),
    "CODEWATCH_LOG_LEVEL": ("logging", "level"),
    "CODEWATCH_LOG_FORMAT": ("logging", "format"),
    "CODEWATCH_FAIL_ON_CROSSOVER": ("crossover", "fail_on_crossover"),
}

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse a boolean environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = _TRUTHY_VALUES | _FALSY_VALUES
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> CodewatchConfig:
    """Cached configuration loader."""
    return ConfigLoader()._load_and_parse(Path(path_str))


class ConfigLoader:
    """Loads and validates codewatch configuration files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")

    def load_config_file(self, path: str | Path | None = None) -> CodewatchConfig:
        """Load configuration from YAML or TOML, falling back to defaults.

        Parameters
        ----------
        path : str | Path | None
            Path to config file. If None, uses ``CODEWATCH_CONFIG_PATH`` and
            then ``pyproject.toml`` discovery.

        Returns
        -------
        CodewatchConfig
            Validated configuration with environment overrides applied

        Raises
        ------
        ConfigurationError
            If the file is missing, malformed or fails validation
        """
        config_path = self._find_config_file(path)
        if config_path is None:
            logger.debug("No codewatch configuration found, using defaults")
            config = CodewatchConfig()
        else:
            config = _load_and_parse_cached(str(config_path.absolute()))
        return self._apply_env_overrides(config)

    def _find_config_file(self, path: str | Path | None) -> Path | None:
        if path is not None:
            explicit = Path(path)
            if not explicit.is_file():
                raise ConfigurationError(str(explicit), "config file not found")
            return explicit

        env_path = os.getenv(CONFIG_PATH_ENV)
        if env_path:
            from_env = Path(env_path)
            if not from_env.is_file():
                raise ConfigurationError(
                    str(from_env), f"config file from {CONFIG_PATH_ENV} not found"
                )
            return from_env

        for directory in (Path.cwd(), *Path.cwd().parents):
            candidate = directory / "pyproject.toml"
            if candidate.is_file():
                return candidate
        return None

    def _load_and_parse(self, config_path: Path) -> CodewatchConfig:
        """Load and parse a configuration file (YAML or TOML)."""
        logger.info("Loading configuration from {path}", path=config_path)

        if config_path.suffix in (".yaml", ".yml"):
            data = self._load_yaml_config(config_path)
        else:
            data = self._load_toml_config(config_path)

        data = self._substitute_env_vars(data)
        return self._parse_config(data, config_path)

    def _load_yaml_config(self, config_path: Path) -> dict[str, Any]:
        """Read the ``spec`` mapping of a ``kind: Config`` YAML manifest."""
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(config_path.name, f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                config_path.name, f"expected a mapping, got {type(data).__name__}"
            )

        kind = data.get("kind")
        if kind != "Config":
            raise ConfigurationError(
                config_path.name, f"YAML config must use 'kind: Config', got 'kind: {kind}'"
            )

        spec = data.get("spec", {})
        if not isinstance(spec, dict):
            raise ConfigurationError(config_path.name, "'spec' must be a mapping")
        return spec

    def _load_toml_config(self, config_path: Path) -> dict[str, Any]:
        """Read ``[tool.codewatch]`` from pyproject.toml or a flat TOML file."""
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(config_path.name, f"invalid TOML: {e}") from e

        section = data.get("tool", {}).get("codewatch")
        if section is not None:
            return section
        if config_path.name == "pyproject.toml":
            logger.debug("No [tool.codewatch] section in {path}, using defaults", path=config_path)
            return {}
        return data

    def _substitute_env_vars(self, data: ConfigData) -> Any:
        """Recursively replace ``${VAR}`` / ``${VAR:default}`` in string values."""
        if isinstance(data, str):

            def _replace(match: re.Match[str]) -> str:
                name, default = match.group(1), match.group(2)
                value = os.getenv(name)
                if value is not None:
                    return value
                if default is not None:
                    return default
                logger.warning("Environment variable {name} is not set", name=name)
                return match.group(0)

            return self.ENV_VAR_PATTERN.sub(_replace, data)
        if isinstance(data, dict):
            return {k: self._substitute_env_vars(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._substitute_env_vars(v) for v in data]
        return data

    def _parse_config(self, data: dict[str, Any], config_path: Path) -> CodewatchConfig:
        try:
            return CodewatchConfig.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(config_path.name, str(e)) from e

    def _apply_env_overrides(self, config: CodewatchConfig) -> CodewatchConfig:
        data = config.model_dump()
        changed = False
        for env_name, path in _ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            value: Any = raw
            if env_name == "CODEWATCH_FAIL_ON_CROSSOVER":
                try:
                    value = _parse_bool_env(raw)
                except ValueError as e:
                    raise ConfigurationError("environment", f"{env_name}: {e}") from e
            elif env_name == "CODEWATCH_LOG_LEVEL":
                value = raw.upper()
            target = data
            for part in path[:-1]:
                target = target[part]
            target[path[-1]] = value
            changed = True
        if not changed:
            return config
        try:
            return CodewatchConfig.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError("environment", str(e)) from e


def load_config(path: str | Path | None = None) -> CodewatchConfig:
    """Load configuration using the discovery order of ``ConfigLoader``."""
    return ConfigLoader().load_config_file(path)


def clear_config_cache() -> None:
    """Drop cached parsed configuration files."""
    _load_and_parse_cached.cache_clear()
