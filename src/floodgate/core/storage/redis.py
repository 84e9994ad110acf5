import asyncio
import math

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from floodgate.core.storage.base import CounterSnapshot, SharedCounterStore, StoreState
from floodgate.exceptions import StoreUnavailableError

logger = structlog.get_logger()

# Errors the client raises when the server is unreachable or slow.
_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisCounterStore(SharedCounterStore):
    """
    Fixed-window counters in Redis.

    Each increment runs INCR, EXPIRE NX and TTL inside one MULTI transaction,
    so the counter and its expiry are created together and the expiry is never
    pushed back by later hits. I/O timeouts come from the client
    (`socket_timeout`).
    """

    def __init__(self, redis: Redis, key_prefix: str = "ratelimit:"):
        self._redis = redis
        self._key_prefix = key_prefix
        self._state = StoreState.CONNECTING

    @property
    def state(self) -> StoreState:
        return self._state

    def _set_state(self, state: StoreState) -> None:
        if state != self._state:
            logger.info("shared_store_state_changed", previous=self._state, current=state)
            self._state = state

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        redis_key = self._key(key)
        window_seconds = math.ceil(window_ms / 1000)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, window_seconds, nx=True)
                pipe.ttl(redis_key)
                count, _, ttl = await pipe.execute()
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"increment failed for {redis_key}", cause=exc) from exc

        self._set_state(StoreState.READY)

        # TTL is -1 (no expiry) or -2 (gone) when the window was not set; treat
        # either as a fresh window.
        ttl = int(ttl) if ttl is not None else -1
        return CounterSnapshot(
            count=int(count or 0),
            ttl_seconds=ttl if ttl > 0 else window_seconds,
        )

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"delete failed for {key}", cause=exc) from exc

    async def refresh_state(self) -> StoreState:
        try:
            await self._redis.ping()
        except _STORE_ERRORS as exc:
            logger.warning("shared_store_ping_failed", error=str(exc))
            self._set_state(StoreState.DOWN)
        else:
            self._set_state(StoreState.READY)
        return self._state
