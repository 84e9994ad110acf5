"""
Routing between the shared store and the local fallback.

Every request decides its own path: the shared store is attempted while its
state is READY or CONNECTING, and a failed attempt yields no snapshot so the
caller evaluates locally. Nothing is remembered between requests, so a store
that comes back is used on the very next call. StoreHealthProbe can keep the
state current in the background, but correctness never depends on it.
"""

import structlog

from floodgate.core.storage.base import CounterSnapshot, SharedCounterStore, StoreState
from floodgate.core.tasks import PeriodicTask
from floodgate.exceptions import StoreUnavailableError

logger = structlog.get_logger()

_USABLE_STATES = frozenset({StoreState.READY, StoreState.CONNECTING})


class FallbackCoordinator:
    def __init__(self, shared: SharedCounterStore | None = None):
        self.shared = shared

    @property
    def state(self) -> StoreState:
        """Connectivity of the shared store; DOWN in local-only mode."""
        if self.shared is None:
            return StoreState.DOWN
        return self.shared.state

    def should_use_shared(self) -> bool:
        return self.state in _USABLE_STATES

    async def try_increment(self, key: str, window_ms: int) -> CounterSnapshot | None:
        """
        Increment on the shared store if it is usable.

        Any error raised by the adapter counts as a failed attempt, whether or
        not it was wrapped in StoreUnavailableError. Cancellation propagates.

        Returns:
            The snapshot, or None when the shared path was skipped or failed.
            A failed attempt is never retried, so the request is counted at
            most once on each store.
        """
        if not self.should_use_shared():
            return None
        try:
            return await self.shared.increment(key, window_ms)
        except Exception as exc:
            logger.warning(
                "shared_store_unavailable",
                key=key,
                state=self.state,
                error=_describe(exc),
            )
            return None

    async def try_delete(self, key: str) -> bool:
        """Best-effort delete on the shared store. Returns True on success."""
        if not self.should_use_shared():
            return False
        try:
            await self.shared.delete(key)
        except Exception as exc:
            logger.warning("shared_store_unavailable", key=key, error=_describe(exc))
            return False
        return True


def _describe(exc: Exception) -> str:
    if isinstance(exc, StoreUnavailableError) and exc.cause is not None:
        exc = exc.cause
    return f"{type(exc).__name__}: {exc}"


class StoreHealthProbe(PeriodicTask):
    """Refreshes a shared store's connectivity state on an interval."""

    name = "shared_store_probe"

    def __init__(self, store: SharedCounterStore, interval_seconds: float = 30):
        super().__init__(interval_seconds)
        self.store = store

    async def run_once(self) -> None:
        await self.store.refresh_state()
