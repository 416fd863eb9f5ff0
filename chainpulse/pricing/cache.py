"""
Bounded TTL cache for price quotes.

Thread-safe. Key -> (value, expiry). Entries expire after a TTL fixed at
construction; when the cache is full, expired entries are purged first and
then the oldest insertion is evicted, so memory stays bounded in a
long-running server process.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable

DEFAULT_MAX_ENTRIES = 2048


class TTLCache:
    """Thread-safe cache with TTL and a size bound."""

    def __init__(
        self,
        ttl_sec: float,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_sec
        self._max = max_entries
        self._clock = clock
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def ttl_sec(self) -> float:
        return self._ttl

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._clock() > expiry:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self._max:
                self._purge_expired_locked()
                while len(self._store) >= self._max:
                    self._store.popitem(last=False)
            self._store[key] = (value, self._clock() + self._ttl)

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expiry) in self._store.items() if now > expiry]
        for k in expired:
            del self._store[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
