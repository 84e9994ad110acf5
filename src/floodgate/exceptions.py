"""
Error types raised by floodgate.

Only misconfiguration is fatal. Shared store failures are recovered by the
fallback path and an exceeded limit is a normal Decision, so
RateLimitExceeded is only raised when a caller explicitly asks for it via
RateLimiter.enforce().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from floodgate.core.strategies.base import Decision


class FloodgateError(Exception):
    """Base class for all floodgate errors."""


class RateLimitConfigError(FloodgateError, ValueError):
    """A limit, window or preset is invalid. Raised at construction time."""


class StoreUnavailableError(FloodgateError):
    """The shared counter store could not complete an operation."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class RateLimitExceeded(FloodgateError):
    """
    Raised by RateLimiter.enforce() when a request is over its limit.

    Attributes:
        decision: The rejected decision.
        retry_after: Seconds until the window resets.
        message: The policy message, carried through unchanged.
    """

    def __init__(self, decision: Decision):
        super().__init__(decision.message)
        self.decision = decision
        self.retry_after = decision.reset_seconds
        self.message = decision.message
