from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from floodgate.core.storage.base import StoreState
from floodgate.core.storage.redis import RedisCounterStore
from floodgate.exceptions import StoreUnavailableError


@pytest.fixture
def pipe():
    pipe = MagicMock()
    # Default: first hit, expiry set, 60 seconds left
    pipe.execute = AsyncMock(return_value=[1, True, 60])
    return pipe


@pytest.fixture
def mock_redis(pipe):
    redis = MagicMock()
    redis.pipeline.return_value.__aenter__.return_value = pipe
    redis.ping = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    return redis


@pytest.mark.asyncio
async def test_increment_runs_one_transaction(mock_redis, pipe):
    store = RedisCounterStore(mock_redis)

    snapshot = await store.increment("ip:1.2.3.4", window_ms=60_000)

    assert snapshot.count == 1
    assert snapshot.ttl_seconds == 60
    mock_redis.pipeline.assert_called_once_with(transaction=True)
    pipe.incr.assert_called_once_with("ratelimit:ip:1.2.3.4")
    # Expiry only on creation
    pipe.expire.assert_called_once_with("ratelimit:ip:1.2.3.4", 60, nx=True)
    pipe.ttl.assert_called_once_with("ratelimit:ip:1.2.3.4")


@pytest.mark.asyncio
async def test_window_is_rounded_up_to_seconds(mock_redis, pipe):
    store = RedisCounterStore(mock_redis, key_prefix="rl:")

    await store.increment("user:u1", window_ms=1_500)

    pipe.expire.assert_called_once_with("rl:user:u1", 2, nx=True)


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [-1, -2, 0, None])
async def test_missing_ttl_means_fresh_window(mock_redis, pipe, ttl):
    pipe.execute.return_value = [7, False, ttl]
    store = RedisCounterStore(mock_redis)

    snapshot = await store.increment("k", window_ms=30_000)

    assert snapshot.count == 7
    assert snapshot.ttl_seconds == 30


@pytest.mark.asyncio
async def test_success_marks_store_ready(mock_redis):
    store = RedisCounterStore(mock_redis)
    assert store.state == StoreState.CONNECTING

    await store.increment("k", window_ms=60_000)

    assert store.state == StoreState.READY


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [RedisConnectionError("refused"), RedisTimeoutError("slow"), OSError("reset"), TimeoutError()],
)
async def test_client_errors_become_store_unavailable(mock_redis, pipe, error):
    pipe.execute.side_effect = error
    store = RedisCounterStore(mock_redis)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.increment("k", window_ms=60_000)

    assert exc_info.value.cause is error
    # A failed call alone does not mark the store down
    assert store.state == StoreState.CONNECTING


@pytest.mark.asyncio
async def test_refresh_state_follows_ping(mock_redis):
    store = RedisCounterStore(mock_redis)

    assert await store.refresh_state() == StoreState.READY

    mock_redis.ping.side_effect = RedisConnectionError("refused")
    assert await store.refresh_state() == StoreState.DOWN

    mock_redis.ping.side_effect = None
    assert await store.refresh_state() == StoreState.READY


@pytest.mark.asyncio
async def test_delete_uses_prefixed_key(mock_redis):
    store = RedisCounterStore(mock_redis)

    await store.delete("user:u1")

    mock_redis.delete.assert_awaited_once_with("ratelimit:user:u1")


@pytest.mark.asyncio
async def test_delete_failure_is_translated(mock_redis):
    mock_redis.delete.side_effect = RedisConnectionError("refused")
    store = RedisCounterStore(mock_redis)

    with pytest.raises(StoreUnavailableError):
        await store.delete("user:u1")
