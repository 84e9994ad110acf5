from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
import structlog

from floodgate.core.strategies.base import Decision

logger = structlog.get_logger()


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_seconds),
    }
    if decision.retry_after is not None:
        headers["Retry-After"] = str(decision.retry_after)
    return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the application's RateLimiter (app.state.limiter) to every request.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limiter = getattr(request.app.state, "limiter", None)

        if limiter is None:
            logger.warning("middleware_uninitialized_skipping")
            return await call_next(request)

        decision = await limiter.hit(request)
        if decision is None:
            return await call_next(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            path=request.url.path,
            method=request.method,
        )

        logger.info(
            "rate_limit_check",
            allowed=decision.allowed,
            count=decision.count,
            remaining=decision.remaining,
            limit=decision.limit,
        )

        headers = rate_limit_headers(decision)

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "RATE_LIMIT_EXCEEDED",
                    "message": decision.message,
                    "retry_after": decision.retry_after,
                },
                headers=headers,
            )

        response = await call_next(request)

        for key, value in headers.items():
            response.headers[key] = value

        return response
