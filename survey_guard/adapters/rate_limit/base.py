"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
sliding-window Redis limiter and the window-counter fallback are
interchangeable.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named request budget.

    Attributes:
        name: Policy name; distinct names are independent counters.
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
    """

    name: str
    max_requests: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        success: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Wait time in whole seconds when blocked.
    """

    success: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None

    @classmethod
    def allowed(cls, *, limit: int, remaining: int, reset_at: float) -> "RateLimitResult":
        return cls(
            success=True,
            limit=limit,
            remaining=max(0, remaining),
            reset_at=reset_at,
            retry_after_seconds=None,
        )

    @classmethod
    def blocked(cls, *, limit: int, reset_at: float, now: float) -> "RateLimitResult":
        return cls(
            success=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(0, int(math.ceil(reset_at - now))),
        )


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request for ``identifier`` against ``policy``.

        Args:
            identifier: Caller identity (typically the client IP).
            policy: Budget to charge.

        Returns:
            RateLimitResult describing whether the request is allowed.

        Raises:
            ValueError: If identifier is empty.
        """
        raise NotImplementedError


def limiter_key(identifier: str, policy: RateLimitPolicy) -> str:
    """Key of the counter for one (policy, identifier) pair."""

    if not identifier:
        raise ValueError("identifier must be a non-empty string")
    return f"{policy.name}:{identifier}"
