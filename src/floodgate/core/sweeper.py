"""
Background cleanup for the in-memory fallback store.

Without a shared store, every distinct key (often one per client IP) leaves an
entry behind in LocalStore. The sweeper drops entries whose window started
more than `stale_after_seconds` ago. This only bounds memory: a stale entry
that escapes a sweep is still reset correctly on its next hit.
"""

import asyncio

import structlog

from floodgate.core.storage.memory import LocalStore
from floodgate.core.tasks import PeriodicTask

logger = structlog.get_logger()

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60
DEFAULT_STALE_AFTER_SECONDS = 60 * 60

# Yield to the event loop after this many removals.
_YIELD_EVERY = 500


class ExpirySweeper(PeriodicTask):
    name = "local_store_sweeper"

    def __init__(
        self,
        store: LocalStore,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
    ):
        super().__init__(interval_seconds)
        if stale_after_seconds <= 0:
            raise ValueError(f"stale_after_seconds must be positive, got {stale_after_seconds}")
        self.store = store
        self.stale_after_seconds = stale_after_seconds

    async def sweep(self) -> int:
        """
        Remove stale entries, taking the store lock once per key.

        Returns:
            Number of entries removed.
        """
        cutoff_ms = self.store.now_ms() - self.stale_after_seconds * 1000
        removed = 0
        for index, key in enumerate(self.store.keys(), start=1):
            if self.store.remove_if_stale(key, cutoff_ms):
                removed += 1
            if index % _YIELD_EVERY == 0:
                await asyncio.sleep(0)

        if removed:
            logger.info("local_store_swept", removed=removed, remaining=len(self.store))
        return removed

    async def run_once(self) -> None:
        await self.sweep()
