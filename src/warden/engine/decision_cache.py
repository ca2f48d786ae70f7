"""Short-lived memo of decisions by canonical key."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from warden.schemas.decision import Decision

logger = logging.getLogger("warden.cache")


@dataclass(frozen=True)
class CacheEntry:
    decision: Decision
    timestamp: float
    temporary: bool
    expires_at: float


class DecisionCache:
    """Age-based cache. Entries expire *ttl* seconds after insertion.

    Expired entries are dropped lazily on lookup and swept in bulk once the
    cache grows past *max_entries*.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, decision: Decision, temporary: bool = False) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            decision=decision,
            timestamp=now,
            temporary=temporary,
            expires_at=now + self.ttl,
        )
        with self._lock:
            self._entries[key] = entry
            oversized = len(self._entries) > self.max_entries
        if oversized:
            self.evict_expired()
        return entry

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in stale:
                del self._entries[k]
            remaining = len(self._entries)
        if stale:
            logger.debug("Evicted %d expired cache entries, %d remaining", len(stale), remaining)
        return len(stale)

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
