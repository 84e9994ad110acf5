import asyncio
import math
from types import SimpleNamespace

import pytest

from floodgate.core.storage.base import CounterSnapshot, SharedCounterStore, StoreState
from floodgate.core.storage.memory import LocalStore
from floodgate.exceptions import StoreUnavailableError


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemorySharedStore(SharedCounterStore):
    """
    Stand-in for a networked store: atomic per key, TTL fixed at creation,
    and switchable into a failing mode.
    """

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()
        self._state = StoreState.READY
        self.failing = False
        # Raised as-is by increment/delete, bypassing StoreUnavailableError.
        self.raw_error: BaseException | None = None
        self.increments = 0
        self.probes = 0

    @property
    def state(self) -> StoreState:
        return self._state

    @state.setter
    def state(self, value: StoreState) -> None:
        self._state = value

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        self.increments += 1
        if self.raw_error is not None:
            raise self.raw_error
        if self.failing:
            raise StoreUnavailableError("increment failed", cause=ConnectionError("refused"))
        async with self._lock:
            now = self._clock()
            count, expires_at = self._counters.get(key, (0, 0.0))
            if count and now >= expires_at:
                count = 0
            if count == 0:
                expires_at = now + math.ceil(window_ms / 1000)
            # Let other callers run between read and write.
            await asyncio.sleep(0)
            count += 1
            self._counters[key] = (count, expires_at)
        return CounterSnapshot(count=count, ttl_seconds=math.ceil(expires_at - now))

    async def delete(self, key: str) -> None:
        if self.raw_error is not None:
            raise self.raw_error
        if self.failing:
            raise StoreUnavailableError("delete failed")
        self._counters.pop(key, None)

    async def refresh_state(self) -> StoreState:
        self.probes += 1
        self._state = StoreState.DOWN if self.failing else StoreState.READY
        return self._state

    def count(self, key: str) -> int:
        return self._counters.get(key, (0, 0.0))[0]


def _make_request(headers: dict[str, str] | None = None, user=None, path: str = "/"):
    """Minimal request object: lower-cased headers, state, url.path."""
    return SimpleNamespace(
        headers={k.lower(): v for k, v in (headers or {}).items()},
        state=SimpleNamespace(user=user),
        url=SimpleNamespace(path=path),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_store(clock: FakeClock) -> LocalStore:
    return LocalStore(clock=clock)


@pytest.fixture
def shared_store(clock: FakeClock) -> InMemorySharedStore:
    return InMemorySharedStore(clock)


@pytest.fixture
def make_request():
    return _make_request
