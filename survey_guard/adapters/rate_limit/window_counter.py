"""Window-counter rate limiter over any key/value store.

A window opens on the first request of a (policy, identifier) pair and lasts
``window_seconds`` from that moment; the counter is read and bumped inside a
single ``store.update`` call so concurrent requests never lose increments.
"""

from __future__ import annotations

import time
from typing import Callable

from survey_guard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitPolicy,
    RateLimitResult,
    limiter_key,
)
from survey_guard.adapters.store.base import AbstractKeyValueStore, JsonValue, StoreWrite


class WindowCounterRateLimiter(AbstractRateLimiter):
    """Counter plus reset time per (policy, identifier)."""

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock

    def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        key = limiter_key(identifier, policy)
        now = self._clock()

        def _consume(record: JsonValue | None) -> tuple[StoreWrite, RateLimitResult]:
            if record is None or float(record["reset_at"]) <= now:
                reset_at = now + policy.window_seconds
                return (
                    StoreWrite.put({"count": 1, "reset_at": reset_at}, policy.window_seconds),
                    RateLimitResult.allowed(
                        limit=policy.max_requests,
                        remaining=policy.max_requests - 1,
                        reset_at=reset_at,
                    ),
                )

            count = int(record["count"])
            reset_at = float(record["reset_at"])
            if count >= policy.max_requests:
                return (
                    StoreWrite.keep(),
                    RateLimitResult.blocked(limit=policy.max_requests, reset_at=reset_at, now=now),
                )

            count += 1
            return (
                StoreWrite.put({"count": count, "reset_at": reset_at}, reset_at - now),
                RateLimitResult.allowed(
                    limit=policy.max_requests,
                    remaining=policy.max_requests - count,
                    reset_at=reset_at,
                ),
            )

        return self._store.update(key, _consume)
