"""Memo table for the violation tracker's per-cycle work.

The tracker recomputes identity hashes and validation results for the same
findings on every watch cycle; memoizing them keeps that work proportional
to the number of *new* findings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

V = TypeVar("V")


class KeyedCache(Generic[V]):
    """Unbounded memo table keyed by hashable tuples.

    Entries are never evicted; the tracker bounds memory with ``clear()``
    and reports the size through ``len()``.

    Examples
    --------
    >>> hashes: KeyedCache[str] = KeyedCache()
    >>> hashes.get_or_create(("a.ts", 1), lambda: "first")
    'first'
    >>> hashes.get_or_create(("a.ts", 1), lambda: "second")
    'first'
    >>> len(hashes)
    1
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[Hashable, V] = {}

    def get_or_create(self, key: Hashable, compute: Callable[[], V]) -> V:
        """Return the entry for ``key``, computing and storing it on a miss."""
        if key in self._entries:
            return self._entries[key]
        value = self._entries[key] = compute()
        return value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
