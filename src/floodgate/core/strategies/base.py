"""
Abstract base classes for rate limiting strategies.

This module defines the contract that all rate limiting algorithms must follow
and the Decision value they return. Callers only ever see a Decision: store
failures are handled inside the strategy and an exceeded limit is an ordinary
outcome, not an exception.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from floodgate.core.storage.base import StoreState
from floodgate.exceptions import RateLimitConfigError

DEFAULT_MESSAGE = "Too many requests, please try again later"


@dataclass(frozen=True)
class Decision:
    """
    Immutable outcome of a single rate limit evaluation.

    Attributes:
        count: Requests seen for the key in the current window, this one included.
        limit: Maximum number of requests allowed within the window.
        remaining: Requests left in the current window, never negative.
        reset_seconds: Seconds until the current window ends.
        allowed: Whether the request is within the limit.
        message: Text to show the client when the request is rejected.

    Example headers this maps to:
        X-RateLimit-Limit: {limit}
        X-RateLimit-Remaining: {remaining}
        X-RateLimit-Reset: {reset_seconds}
        Retry-After: {retry_after}  (only on 429 responses)
    """

    count: int
    limit: int
    remaining: int
    reset_seconds: int
    allowed: bool
    message: str = DEFAULT_MESSAGE

    @property
    def retry_after(self) -> int | None:
        """Seconds the client should wait, only set for rejected requests."""
        if self.allowed:
            return None
        return self.reset_seconds

    @classmethod
    def from_count(
        cls,
        count: int,
        limit: int,
        reset_seconds: int,
        message: str = DEFAULT_MESSAGE,
    ) -> "Decision":
        return cls(
            count=count,
            limit=limit,
            remaining=max(0, limit - count),
            reset_seconds=max(0, reset_seconds),
            allowed=count <= limit,
            message=message,
        )


def validate_limits(limit: int, window_ms: int) -> None:
    """Reject non-positive or non-integer limits and windows."""
    for name, value in (("limit", limit), ("window_ms", window_ms)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise RateLimitConfigError(f"{name} must be an integer, got {value!r}")
        if value <= 0:
            raise RateLimitConfigError(f"{name} must be positive, got {value}")


class RateLimitStrategy(ABC):
    """
    Abstract base class for rate limiting algorithms.

    All rate limiting strategies must implement the `check` and `reset` methods.
    """

    @abstractmethod
    async def check(
        self,
        key: str,
        limit: int,
        window_ms: int,
        message: str = DEFAULT_MESSAGE,
    ) -> Decision:
        """
        Count a request against `key` and decide whether it is allowed.

        This method is called for every incoming request that needs
        rate limiting. It must be fast and handle concurrent calls.

        Args:
            key: Unique identifier for the rate limit bucket.
                 Examples: "user:123", "ip:192.168.1.1"
            limit: Maximum number of requests allowed within the window.
            window_ms: Duration of the time window in milliseconds.
            message: Carried into the returned Decision unchanged.

        Returns:
            Decision with the outcome and header metadata.

        Raises:
            RateLimitConfigError: If limit or window_ms is not a positive integer.
        """

    @abstractmethod
    async def reset(self, key: str) -> None:
        """
        Reset rate limit state for a specific key.

        Args:
            key: The rate limit key to reset.
        """

    @property
    def store_state(self) -> StoreState | None:
        """Connectivity of the backing shared store, if the strategy has one."""
        return None
