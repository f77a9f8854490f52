"""In-process TTL cache for cart validation results.

Quantity steppers fire the same validation several times a second; this
cache absorbs those repeats.  Entries are never a source of truth: a miss
just recomputes.  One instance lives on `app.state` and is handed to
routes through `get_validation_cache`, so tests can swap or clear it.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Iterable

from fastapi import Request


def cart_fingerprint(lines: Iterable[tuple[str, int]]) -> str:
    """Serialize (line_id, quantity) pairs into an order-independent key."""
    return "|".join(f"{line_id}:{quantity}" for line_id, quantity in sorted(lines))


class ValidationCache:
    """Bounded LRU with a per-entry time-to-live."""

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_entries:
            self._prune()

    def clear(self) -> None:
        self._entries.clear()

    def _prune(self) -> None:
        """Drop expired entries, then the least recently used ones."""
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


def get_validation_cache(request: Request) -> ValidationCache:
    """FastAPI dependency: the app-owned validation cache."""
    return request.app.state.validation_cache
