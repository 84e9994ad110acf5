"""
Abstract base classes for counter stores.

A counter store increments a per-key counter whose expiry is fixed when the
key is first created. Two kinds exist:

- SharedCounterStore: networked, usable by many processes (RedisCounterStore).
- LocalStore: single-process fallback kept in memory.

Both honour the same contract, so strategies and tests can treat them alike.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum


class StoreState(StrEnum):
    """Last known connectivity of a shared store."""

    READY = "ready"
    CONNECTING = "connecting"
    DOWN = "down"


@dataclass(frozen=True)
class CounterSnapshot:
    """
    Counter value right after an increment.

    Attributes:
        count: The post-increment count for the current window.
        ttl_seconds: Seconds until the window (and the counter) expires.
    """

    count: int
    ttl_seconds: int


class CounterStore(ABC):
    """
    Abstract base class for fixed-window counters.

    Implementations must guarantee:
    - Atomic increments: two concurrent increments of the same key never
      observe the same pre-increment value.
    - Expiry is set only when the key is created, never refreshed by later
      hits, so the reset boundary does not move with traffic.
    """

    @abstractmethod
    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        """
        Increment the counter for `key` and report its remaining lifetime.

        Args:
            key: The rate limit key.
            window_ms: Window length, used as the expiry of a new counter.

        Returns:
            CounterSnapshot with the new count and seconds until reset.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Delete a counter. No error if the key doesn't exist.

        Args:
            key: The rate limit key.
        """


class SharedCounterStore(CounterStore):
    """
    A counter store reachable over the network.

    Adds a best-effort readiness signal. `state` is read on every request
    and written only by the adapter itself.
    """

    @property
    @abstractmethod
    def state(self) -> StoreState:
        """Last known connectivity state."""

    @abstractmethod
    async def refresh_state(self) -> StoreState:
        """Probe the store and update `state`."""
