import asyncio

import pytest

from floodgate.core.storage.memory import LocalStore
from floodgate.core.sweeper import ExpirySweeper


@pytest.mark.asyncio
async def test_sweep_removes_only_stale_entries(local_store: LocalStore, clock) -> None:
    local_store.hit("ip:old", window_ms=1_000)
    clock.advance(30 * 60)
    local_store.hit("ip:recent", window_ms=1_000)
    clock.advance(30 * 60 + 1)

    removed = await ExpirySweeper(local_store).sweep()

    assert removed == 1
    assert local_store.get("ip:old") is None
    assert local_store.get("ip:recent") is not None


@pytest.mark.asyncio
async def test_threshold_is_independent_of_window(local_store: LocalStore, clock) -> None:
    """A long window is still swept once its start is older than the threshold."""
    local_store.hit("ip:daily", window_ms=24 * 60 * 60 * 1000)
    clock.advance(60 * 60)

    assert await ExpirySweeper(local_store).sweep() == 0

    clock.advance(1)
    assert await ExpirySweeper(local_store).sweep() == 1


@pytest.mark.asyncio
async def test_swept_key_starts_fresh(local_store: LocalStore, clock) -> None:
    for _ in range(3):
        local_store.hit("k", window_ms=60_000)
    clock.advance(2 * 60 * 60)
    await ExpirySweeper(local_store).sweep()

    assert local_store.hit("k", window_ms=60_000).count == 1


@pytest.mark.asyncio
async def test_many_keys(local_store: LocalStore, clock) -> None:
    for i in range(1_200):
        local_store.hit(f"ip:10.0.{i // 256}.{i % 256}", window_ms=60_000)
    clock.advance(60 * 60 + 1)

    assert await ExpirySweeper(local_store).sweep() == 1_200
    assert len(local_store) == 0


@pytest.mark.asyncio
async def test_background_task_sweeps_and_stops(local_store: LocalStore, clock) -> None:
    local_store.hit("k", window_ms=1_000)
    clock.advance(60 * 60 + 1)
    sweeper = ExpirySweeper(local_store, interval_seconds=0.01)

    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.05)
    await sweeper.stop()
    await sweeper.stop()

    assert not sweeper.running
    assert len(local_store) == 0


@pytest.mark.parametrize(
    "kwargs",
    [{"interval_seconds": 0}, {"stale_after_seconds": -1}],
)
def test_invalid_settings_are_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        ExpirySweeper(LocalStore(), **kwargs)
