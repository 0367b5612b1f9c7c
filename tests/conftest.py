"""Shared pytest configuration.

Logging is switched to plain WARNING output for the whole session so test
output stays readable.
"""

import pytest

from codewatch.kernel.logging import configure_logging


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging() -> None:
    configure_logging(level="WARNING", format="console", force_reconfigure=True)
