"""Shared timing helper for engine runs, rule checks and watch cycles."""

import time


class Timer:
    """Elapsed milliseconds since construction.

    Examples
    --------
    >>> timer = Timer()
    >>> timer.duration_ms >= 0
    True
    """

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    @property
    def duration_str(self) -> str:
        """Elapsed time formatted with 2 decimal places."""
        return f"{self.duration_ms:.2f}"
