"""Cached profile names for shell completion."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

LOG = logging.getLogger(__name__)


def fuzzy_match(target: str, text: str) -> bool:
    """Return True if all characters of `text` appear in order in `target`.

    Matching is case-insensitive and an empty `text` matches everything.
    """
    if not text:
        return True
    if len(text) > len(target):
        return False

    remaining = iter(target.lower())
    return all(ch in remaining for ch in text.lower())


class ProfileCache:
    """A read-through cache of profile names, invalidated on config writes.

    The list is loaded lazily by `loader` the first time it is needed and kept
    until `invalidate` is called. This class is thread-safe: concurrent misses
    load the list only once.
    """

    def __init__(self, loader: Callable[[], list[str]]) -> None:
        self._loader = loader
        self._names: tuple[str, ...] | None = None
        self._lock = threading.Lock()

    def names(self) -> list[str]:
        cached = self._names
        if cached is not None:
            return list(cached)

        with self._lock:
            # Another thread may have loaded the names while we waited.
            if self._names is None:
                LOG.debug("profile cache miss, loading names")
                self._names = tuple(self._loader())
            return list(self._names)

    def invalidate(self) -> None:
        with self._lock:
            self._names = None

    def complete(self, text: str = "", exclude: Iterable[str] = ()) -> list[str]:
        """Return cached names fuzzily matching `text`, minus any excluded prefixes."""
        exclude = tuple(exclude)
        return [
            name
            for name in self.names()
            if not (exclude and name.startswith(exclude)) and fuzzy_match(name, text)
        ]
