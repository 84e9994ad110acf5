import math

from floodgate.core.fallback import FallbackCoordinator
from floodgate.core.storage.base import CounterSnapshot, SharedCounterStore, StoreState
from floodgate.core.storage.memory import LocalStore
from floodgate.core.strategies.base import (
    DEFAULT_MESSAGE,
    Decision,
    RateLimitStrategy,
    validate_limits,
)


class FixedWindowStrategy(RateLimitStrategy):
    """
    Fixed window counter with automatic local fallback.

    Counts go to the shared store while it is usable and to the LocalStore
    otherwise. The count restarts at 1 on the first hit after a window
    expires, so up to 2x limit requests can pass around a window boundary.
    """

    def __init__(
        self,
        local: LocalStore | None = None,
        shared: SharedCounterStore | None = None,
    ):
        self.local = local if local is not None else LocalStore()
        self.coordinator = FallbackCoordinator(shared)

    async def check(
        self,
        key: str,
        limit: int,
        window_ms: int,
        message: str = DEFAULT_MESSAGE,
    ) -> Decision:
        validate_limits(limit, window_ms)

        snapshot = await self.coordinator.try_increment(key, window_ms)
        if snapshot is None:
            return self.evaluate_local(key, limit, window_ms, message)
        return self._decide(snapshot, limit, window_ms, message)

    def evaluate_local(
        self,
        key: str,
        limit: int,
        window_ms: int,
        message: str = DEFAULT_MESSAGE,
    ) -> Decision:
        """Count `key` on the LocalStore only."""
        validate_limits(limit, window_ms)
        snapshot = self.local.hit(key, window_ms)
        return self._decide(snapshot, limit, window_ms, message)

    @property
    def store_state(self) -> StoreState:
        return self.coordinator.state

    async def reset(self, key: str) -> None:
        self.local.discard(key)
        await self.coordinator.try_delete(key)

    @staticmethod
    def _decide(
        snapshot: CounterSnapshot,
        limit: int,
        window_ms: int,
        message: str,
    ) -> Decision:
        reset_seconds = snapshot.ttl_seconds
        if reset_seconds <= 0:
            reset_seconds = math.ceil(window_ms / 1000)
        return Decision.from_count(snapshot.count, limit, reset_seconds, message)
