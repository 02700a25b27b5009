from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Process-local cache; entries vanish on expiry, eviction or restart.

    Insertion order doubles as eviction order: once ``max_entries`` is hit,
    expired entries are purged first, then the oldest live ones.
    """

    def __init__(self, max_entries: int = 256, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._max_entries = max(1, max_entries)
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None or entry.expires_at <= self._clock():
            if entry is not None:
                del self._store[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._store.pop(key, None)
        if len(self._store) >= self._max_entries:
            self._make_room()
        self._store[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def _make_room(self) -> None:
        now = self._clock()
        for key in [k for k, entry in self._store.items() if entry.expires_at <= now]:
            del self._store[key]
        while len(self._store) >= self._max_entries:
            self._store.popitem(last=False)
            self._evictions += 1

    def clear(self) -> None:
        self._store.clear()

    def metrics(self) -> dict[str, int]:
        return {"hits": self._hits, "misses": self._misses, "size": len(self._store), "evictions": self._evictions}
