from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from redis.asyncio import from_url

from floodgate.api.middleware import RateLimitMiddleware
from floodgate.api.routes import router, skip_health_checks
from floodgate.config import get_settings
from floodgate.core.fallback import StoreHealthProbe
from floodgate.core.logging import setup_logging
from floodgate.core.policy import RateLimiter, preset_policy
from floodgate.core.storage.memory import LocalStore
from floodgate.core.storage.redis import RedisCounterStore
from floodgate.core.strategies.fixed_window import FixedWindowStrategy
from floodgate.core.sweeper import ExpirySweeper

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifecycle manager.
    Builds the limiter, starts the background tasks and stops them on shutdown.
    """
    settings = get_settings()
    setup_logging(settings.log_level)

    # 1. Infrastructure (optional shared store)
    redis_client = None
    shared = None
    if settings.redis_url:
        redis_client = from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        shared = RedisCounterStore(redis_client, key_prefix=settings.key_prefix)

    # 2. Core logic
    local = LocalStore()
    strategy = FixedWindowStrategy(local=local, shared=shared)
    policy = preset_policy(settings.rate_limit_preset, skip=skip_health_checks)
    app.state.limiter = RateLimiter(strategy, policy)

    # 3. Background tasks
    tasks = [
        ExpirySweeper(
            local,
            interval_seconds=settings.sweep_interval_seconds,
            stale_after_seconds=settings.stale_after_seconds,
        )
    ]
    if shared is not None and settings.health_check_interval_seconds > 0:
        await shared.refresh_state()
        tasks.append(StoreHealthProbe(shared, settings.health_check_interval_seconds))
    for task in tasks:
        task.start()

    logger.info(
        "floodgate_started",
        preset=settings.rate_limit_preset,
        shared_store=shared is not None,
    )
    try:
        yield
    finally:
        # 4. Cleanup
        for task in tasks:
            await task.stop()
        if redis_client is not None:
            await redis_client.aclose()
        logger.info("floodgate_stopped")


app = FastAPI(
    title=get_settings().app_name,
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware)
app.include_router(router)
