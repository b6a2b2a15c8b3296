"""Construction of the access-control guard.

The guard bundles the rate limiter, the verification code manager and the
duplicate-submission tracker around explicitly built stores. One instance is
owned by the app (``app.state.guard``); tests build their own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import redis

from survey_guard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitPolicy
from survey_guard.adapters.rate_limit.policies import build_policies
from survey_guard.adapters.rate_limit.redis_sliding import RedisSlidingWindowRateLimiter
from survey_guard.adapters.rate_limit.window_counter import WindowCounterRateLimiter
from survey_guard.adapters.store.base import AbstractKeyValueStore
from survey_guard.adapters.store.factory import create_store, local_store_of
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.adapters.store.redis_store import create_redis_client
from survey_guard.core.config import Settings
from survey_guard.services.submission_tracker import SubmissionTracker
from survey_guard.services.verification_service import VerificationCodeManager

logger = logging.getLogger(__name__)


@dataclass
class Guard:
    """Wired guard components plus the stores they own."""

    verification: VerificationCodeManager
    submissions: SubmissionTracker
    rate_limiter: AbstractRateLimiter
    policies: dict[str, RateLimitPolicy]
    stores: dict[str, AbstractKeyValueStore] = field(default_factory=dict)
    primary_configured: bool = False

    def policy(self, name: str) -> RateLimitPolicy:
        return self.policies[name]

    @property
    def local_stores(self) -> list[LocalKeyValueStore]:
        locals_ = (local_store_of(store) for store in self.stores.values())
        return [store for store in locals_ if store is not None]

    def purge_expired(self) -> int:
        """Sweep expired entries from every local store."""

        return sum(store.purge_expired() for store in self.local_stores)


def build_guard(
    cfg: Settings,
    *,
    redis_client: redis.Redis | None = None,
    clock: Callable[[], float] = time.time,
) -> Guard:
    """Build the guard from settings.

    Args:
        cfg: Application settings.
        redis_client: Primary client override; by default one is created when
            ``STORE_REDIS_URL`` is set.
        clock: Time source shared by every component.

    Returns:
        A fully wired Guard.
    """
    if redis_client is None and cfg.store.redis_url:
        redis_client = create_redis_client(cfg.store)

    verification_store = create_store(
        cfg.store,
        namespace="verification",
        persist=True,
        redis_client=redis_client,
        expiry_grace_seconds=cfg.verification.expired_grace_seconds,
        clock=clock,
    )
    submission_store = create_store(
        cfg.store, namespace="submissions", persist=True, redis_client=redis_client, clock=clock
    )
    # Counters live in memory; with Redis the sliding window script is primary.
    rate_limit_store = create_store(cfg.store, namespace="rate_limit", persist=False, clock=clock)

    rate_limiter: AbstractRateLimiter = WindowCounterRateLimiter(rate_limit_store, clock=clock)
    if redis_client is not None:
        rate_limiter = RedisSlidingWindowRateLimiter(
            redis_client,
            fallback=rate_limiter,
            key_prefix=cfg.store.key_prefix,
            clock=clock,
        )

    verify = cfg.verification
    guard = Guard(
        verification=VerificationCodeManager(
            verification_store,
            allowed_domain=verify.allowed_domain,
            ttl_seconds=verify.code_ttl_seconds,
            max_attempts=verify.max_attempts,
            code_length=verify.code_length,
            expired_grace_seconds=verify.expired_grace_seconds,
            hash_secret=verify.hash_secret,
            clock=clock,
        ),
        submissions=SubmissionTracker(
            submission_store,
            retention_seconds=cfg.submission.retention_days * 24 * 60 * 60,
            clock=clock,
        ),
        rate_limiter=rate_limiter,
        policies=build_policies(cfg.rate_limit),
        stores={
            "verification": verification_store,
            "submissions": submission_store,
            "rate_limit": rate_limit_store,
        },
        primary_configured=redis_client is not None,
    )

    logger.info(
        "guard.built",
        extra={
            "primary_configured": guard.primary_configured,
            "rate_limiter": type(rate_limiter).__name__,
            "fallback_dir": cfg.store.fallback_dir,
        },
    )
    return guard


async def run_cleanup_loop(guard: Guard, interval_seconds: float) -> None:
    """Periodically purge expired fallback entries until cancelled."""

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(guard.purge_expired)
        except OSError as exc:
            logger.error("guard.cleanup_failed", extra={"error_type": type(exc).__name__})
            continue
        if removed:
            logger.info("guard.cleanup", extra={"removed": removed})
