"""Orchestrator Factory - the composition root for codewatch.

Builds an ``Orchestrator`` from a configuration file (or an explicit
configuration snapshot), wiring logging, storage and the event bus. Nothing
in codewatch is a process-wide singleton; every component is created here
and passed to its consumers.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from codewatch.kernel.config.loader import load_config
from codewatch.kernel.logging import configure_logging, get_logger
from codewatch.kernel.orchestration.events import EventBus
from codewatch.kernel.orchestration.orchestrator import Orchestrator
from codewatch.stdlib.adapters.memory import InMemoryViolationStorage

if TYPE_CHECKING:
    from codewatch.kernel.config.models import CodewatchConfig
    from codewatch.kernel.ports.engine import Engine
    from codewatch.kernel.ports.storage import ViolationStorage

logger = get_logger(__name__)


class OrchestratorFactory:
    """Factory for creating orchestrators from configuration.

    This factory handles:
    1. Resolving the configuration (explicit snapshot, file, or discovery)
    2. Applying the logging section
    3. Wiring engines, storage and the event bus into an orchestrator

    Examples
    --------
    ```python
    from codewatch.kernel.orchestration.orchestrator_factory import OrchestratorFactory

    factory = OrchestratorFactory()
    orchestrator = factory.create_orchestrator(
        engines={"typescript": TscEngine(), "eslint": EslintEngine()},
        config_path="codewatch.yaml",
    )
    result = await orchestrator.aanalyze()
    ```
    """

    def __init__(self, configure_logs: bool = True) -> None:
        self.configure_logs = configure_logs

    def create_orchestrator(
        self,
        engines: Mapping[str, Engine] | None = None,
        config: CodewatchConfig | None = None,
        config_path: str | Path | None = None,
        storage: ViolationStorage | None = None,
        event_bus: EventBus | None = None,
    ) -> Orchestrator:
        """Create a fully wired orchestrator.

        Parameters
        ----------
        engines : Mapping[str, Engine] | None
            Engines by name.
        config : CodewatchConfig | None
            Explicit configuration; wins over ``config_path``.
        config_path : str | Path | None
            Configuration file to load when ``config`` is not given.
        storage : ViolationStorage | None
            Persistence backend; an ``InMemoryViolationStorage`` by default.
        event_bus : EventBus | None
            Shared event bus; a new one by default.

        Returns
        -------
        Orchestrator
            Ready to analyze or start watch mode.

        Raises
        ------
        ConfigurationError
            If the configuration file cannot be read or is invalid.
        """
        resolved = config if config is not None else load_config(config_path)

        if self.configure_logs:
            log = resolved.logging
            configure_logging(
                level=log.level,
                format=log.format,
                output_file=log.output_file,
                use_color=log.use_color,
                include_timestamp=log.include_timestamp,
            )

        orchestrator = Orchestrator(
            config=resolved,
            engines=engines,
            storage=storage if storage is not None else InMemoryViolationStorage(),
            event_bus=event_bus or EventBus(),
        )
        logger.debug(
            "Created orchestrator for {path} with engines: {engines}",
            path=resolved.target_path,
            engines=", ".join(engines or {}) or "none",
        )
        return orchestrator


def create_orchestrator(
    engines: Mapping[str, Engine] | None = None,
    config: CodewatchConfig | None = None,
    config_path: str | Path | None = None,
    storage: ViolationStorage | None = None,
    event_bus: EventBus | None = None,
) -> Orchestrator:
    """Shortcut for ``OrchestratorFactory().create_orchestrator(...)``."""
    return OrchestratorFactory().create_orchestrator(
        engines=engines,
        config=config,
        config_path=config_path,
        storage=storage,
        event_bus=event_bus,
    )
