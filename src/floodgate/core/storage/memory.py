"""
In-memory counter store used when the shared store is unavailable.

This store keeps fixed-window counters in a Python dictionary, making it:
- Fast: No network calls, no serialization
- Simple: No external dependencies
- Isolated: Each instance is independent

Counts are per process. When several workers fall back at the same time,
each enforces the limit on its own share of the traffic.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from floodgate.core.storage.base import CounterSnapshot, CounterStore


@dataclass
class WindowEntry:
    """
    Counter state for one key.

    Attributes:
        count: Requests seen in the current window.
        window_start: Start of the current window, in milliseconds.
    """

    count: int
    window_start: float


class LocalStore(CounterStore):
    """
    In-memory implementation of CounterStore.

    Every read-check-write of an entry happens under a single lock, so
    concurrent hits on the same key are never lost, whether they come from the
    event loop or from worker threads. The critical section holds no awaits.

    Expired entries are reset on read. Entries that are never read again are
    left for the ExpirySweeper.

    Example:
        >>> store = LocalStore()
        >>> store.hit("ip:203.0.113.5", window_ms=60_000)
        CounterSnapshot(count=1, ttl_seconds=60)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            clock: Returns the current time in seconds. Only differences
                between readings are used, so a monotonic clock is fine.
        """
        self._clock = clock
        self._entries: dict[str, WindowEntry] = {}
        self._lock = threading.Lock()

    def now_ms(self) -> float:
        return self._clock() * 1000

    def hit(self, key: str, window_ms: int) -> CounterSnapshot:
        """
        Count one request for `key` in its current window.

        A missing entry, or one whose window has fully elapsed, is replaced by
        a fresh window starting now before counting.

        Args:
            key: The rate limit key.
            window_ms: Window length in milliseconds.

        Returns:
            CounterSnapshot with the new count and seconds until reset.
        """
        with self._lock:
            now = self.now_ms()
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start >= window_ms:
                entry = WindowEntry(count=0, window_start=now)
                self._entries[key] = entry
            entry.count += 1
            count = entry.count
            window_end = entry.window_start + window_ms

        ttl_seconds = math.ceil((window_end - now) / 1000)
        return CounterSnapshot(count=count, ttl_seconds=max(0, ttl_seconds))

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        return self.hit(key, window_ms)

    async def delete(self, key: str) -> None:
        self.discard(key)

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    # =========================================================================
    # Sweeping
    # =========================================================================

    def keys(self) -> list[str]:
        """Snapshot of all keys currently held, stale ones included."""
        with self._lock:
            return list(self._entries)

    def remove_if_stale(self, key: str, cutoff_ms: float) -> bool:
        """
        Remove `key` if its window started before `cutoff_ms`.

        The staleness check is repeated under the lock, so an entry that was
        reset by a concurrent hit after the key snapshot survives.

        Returns:
            True if the entry was removed.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.window_start >= cutoff_ms:
                return False
            del self._entries[key]
            return True

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def get(self, key: str) -> WindowEntry | None:
        """Copy of the entry for `key`, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return WindowEntry(count=entry.count, window_start=entry.window_start)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
