"""
Rate limit policies: presets, key derivation and skip rules.

A policy turns a request into a (key, limit) pair. The request can be any
object with a `headers` mapping and a `state` namespace, such as a Starlette
Request; authentication middleware is expected to put the caller's identity
in `request.state.user`.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from floodgate.core.strategies.base import (
    DEFAULT_MESSAGE,
    Decision,
    RateLimitStrategy,
    validate_limits,
)
from floodgate.exceptions import RateLimitConfigError, RateLimitExceeded

KeyFunc = Callable[[Any], str]
SkipFunc = Callable[[Any], bool]

UNKNOWN_CLIENT = "unknown"


class PresetName(StrEnum):
    STANDARD = "standard"
    AUTH = "auth"
    STRICT = "strict"
    UPLOAD = "upload"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class Preset:
    limit: int
    window_ms: int
    message: str = DEFAULT_MESSAGE


RATE_LIMITS: Mapping[PresetName, Preset] = {
    PresetName.STANDARD: Preset(limit=100, window_ms=60_000),
    PresetName.AUTH: Preset(
        limit=10,
        window_ms=60_000,
        message="Too many authentication attempts, please try again later",
    ),
    PresetName.STRICT: Preset(
        limit=5,
        window_ms=15 * 60_000,
        message="Too many requests for this action, please wait before trying again",
    ),
    PresetName.UPLOAD: Preset(
        limit=20,
        window_ms=60_000,
        message="Too many uploads, please wait before uploading more files",
    ),
    # Internal callers.
    PresetName.WEBHOOK: Preset(limit=1000, window_ms=60_000),
}


# =============================================================================
# Key derivation
# =============================================================================


def get_client_ip(request: Any) -> str:
    """
    Best guess at the client address from proxy headers.

    Order: first hop of X-Forwarded-For, X-Real-IP, CF-Connecting-IP.
    """
    headers = request.headers
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return (
        headers.get("x-real-ip")
        or headers.get("cf-connecting-ip")
        or UNKNOWN_CLIENT
    )


def get_user_id(request: Any) -> str | None:
    """The authenticated subject, or None for anonymous requests."""
    user = getattr(request.state, "user", None)
    if user is None:
        return None
    if isinstance(user, str):
        return user or None
    if isinstance(user, Mapping):
        sub = user.get("sub")
    else:
        sub = getattr(user, "sub", None)
    return str(sub) if sub else None


def ip_key(request: Any) -> str:
    return f"ip:{get_client_ip(request)}"


def user_key(request: Any) -> str:
    """`user:<id>` for authenticated requests, `ip:<addr>` otherwise."""
    user_id = get_user_id(request)
    if user_id:
        return f"user:{user_id}"
    return ip_key(request)


# =============================================================================
# Policies
# =============================================================================


@dataclass(frozen=True)
class Policy:
    """
    A single limit applied to every request.

    Attributes:
        limit: Maximum requests per window.
        window_ms: Window length in milliseconds.
        key_func: Maps a request to its rate limit key. Defaults to the
            client IP.
        skip: Requests for which it returns True are not counted at all.
        message: Passed through to rejected decisions.
    """

    limit: int
    window_ms: int
    key_func: KeyFunc = get_client_ip
    skip: SkipFunc | None = None
    message: str = DEFAULT_MESSAGE

    def __post_init__(self) -> None:
        validate_limits(self.limit, self.window_ms)

    def should_skip(self, request: Any) -> bool:
        return self.skip is not None and bool(self.skip(request))

    def resolve(self, request: Any) -> tuple[str, int]:
        return self.key_func(request), self.limit


@dataclass(frozen=True)
class TieredPolicy:
    """
    Separate limits for authenticated and anonymous traffic.

    Authenticated requests are counted under `user:<id>` against
    `authenticated_limit`; anonymous ones under `ip:<addr>` against
    `unauthenticated_limit`. The two namespaces never share a counter.
    """

    unauthenticated_limit: int
    authenticated_limit: int
    window_ms: int
    skip: SkipFunc | None = None
    message: str = DEFAULT_MESSAGE

    def __post_init__(self) -> None:
        validate_limits(self.unauthenticated_limit, self.window_ms)
        validate_limits(self.authenticated_limit, self.window_ms)

    def should_skip(self, request: Any) -> bool:
        return self.skip is not None and bool(self.skip(request))

    def resolve(self, request: Any) -> tuple[str, int]:
        user_id = get_user_id(request)
        if user_id:
            return f"user:{user_id}", self.authenticated_limit
        return ip_key(request), self.unauthenticated_limit


def preset_policy(
    name: PresetName | str,
    key_func: KeyFunc = get_client_ip,
    skip: SkipFunc | None = None,
    message: str | None = None,
) -> Policy:
    try:
        preset = RATE_LIMITS[PresetName(name)]
    except ValueError:
        raise RateLimitConfigError(f"Unknown rate limit preset: {name!r}") from None
    return Policy(
        limit=preset.limit,
        window_ms=preset.window_ms,
        key_func=key_func,
        skip=skip,
        message=message or preset.message,
    )


def standard_policy(**kwargs: Any) -> Policy:
    return preset_policy(PresetName.STANDARD, **kwargs)


def auth_policy(**kwargs: Any) -> Policy:
    """Brute-force protection for login and token endpoints."""
    return preset_policy(PresetName.AUTH, **kwargs)


def strict_policy(**kwargs: Any) -> Policy:
    """Sensitive actions such as password reset."""
    return preset_policy(PresetName.STRICT, **kwargs)


def upload_policy(**kwargs: Any) -> Policy:
    return preset_policy(PresetName.UPLOAD, **kwargs)


def webhook_policy(**kwargs: Any) -> Policy:
    return preset_policy(PresetName.WEBHOOK, **kwargs)


def user_policy(
    limit: int,
    window_ms: int,
    skip: SkipFunc | None = None,
    message: str = DEFAULT_MESSAGE,
) -> Policy:
    """Limit per user when authenticated, per IP otherwise."""
    return Policy(limit=limit, window_ms=window_ms, key_func=user_key, skip=skip, message=message)


# =============================================================================
# Limiter
# =============================================================================


class RateLimiter:
    """
    Applies one policy to requests through a strategy.

    One instance is built per protected route group and shared by all of its
    requests.
    """

    def __init__(self, strategy: RateLimitStrategy, policy: Policy | TieredPolicy):
        self.strategy = strategy
        self.policy = policy

    async def hit(self, request: Any) -> Decision | None:
        """
        Count `request` and return the decision.

        Returns:
            None if the policy skips this request; nothing is counted then.
        """
        if self.policy.should_skip(request):
            return None
        key, limit = self.policy.resolve(request)
        return await self.strategy.check(key, limit, self.policy.window_ms, self.policy.message)

    async def enforce(self, request: Any) -> Decision | None:
        """
        Like hit(), but raise for rejected requests.

        Raises:
            RateLimitExceeded: If the request is over the limit.
        """
        decision = await self.hit(request)
        if decision is not None and not decision.allowed:
            raise RateLimitExceeded(decision)
        return decision
