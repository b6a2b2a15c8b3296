"""Sliding-window rate limiter backed by Redis.

Each (policy, identifier) pair owns a sorted set of request timestamps. One
Lua script trims entries older than the window, counts the rest and, when
under budget, records the new request; Redis runs scripts atomically, so
concurrent bursts from the same caller cannot overshoot the limit.

When Redis fails the check is delegated to the fallback limiter, which
returns the same three observable fields with the same meaning.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

import redis
from redis.exceptions import RedisError

from survey_guard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitPolicy,
    RateLimitResult,
    limiter_key,
)
from survey_guard.core.logging import diagnostics_enabled

logger = logging.getLogger(__name__)

SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, member)
  count = count + 1
  allowed = 1
end

local reset = now + window
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
if oldest[2] then
  reset = tonumber(oldest[2]) + window
end
redis.call('PEXPIRE', key, window)
return {allowed, count, reset}
"""


class RedisSlidingWindowRateLimiter(AbstractRateLimiter):
    """Sliding-log limiter with a window-counter fallback."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        fallback: AbstractRateLimiter,
        key_prefix: str = "survey_guard",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._fallback = fallback
        self._key_prefix = key_prefix
        self._clock = clock
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        key = f"{self._key_prefix}:rate_limit:{limiter_key(identifier, policy)}"
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = max(1, int(policy.window_seconds * 1000))

        try:
            allowed, count, reset_ms = self._script(
                keys=[key],
                args=[now_ms, window_ms, policy.max_requests, f"{now_ms}-{uuid.uuid4().hex}"],
            )
        except RedisError as exc:
            extra = {"policy": policy.name}
            if diagnostics_enabled():
                extra["error_msg"] = str(exc)
            logger.warning("rate_limit.primary_failed", extra=extra)
            return self._fallback.check(identifier, policy)

        reset_at = int(reset_ms) / 1000
        if int(allowed):
            return RateLimitResult.allowed(
                limit=policy.max_requests,
                remaining=policy.max_requests - int(count),
                reset_at=reset_at,
            )
        return RateLimitResult.blocked(limit=policy.max_requests, reset_at=reset_at, now=now)
