"""Rate limiting dependency for FastAPI routes.

This module wires the guard's rate limiter into the HTTP layer.

Strategy:
- One named policy per endpoint family (submit, questions, code_request,
  default); policies are independent counters for the same caller.
- The caller is identified by client IP taken from proxy headers.
- Allowed responses carry X-RateLimit-* headers; rejections are HTTP 429
  with Retry-After.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, Response, status

from survey_guard.adapters.rate_limit.base import RateLimitResult
from survey_guard.api.dependencies import get_guard
from survey_guard.core.config import settings
from survey_guard.core.guard import Guard
from survey_guard.core.logging import hash_prefix

logger = logging.getLogger(__name__)

LOOPBACK_PLACEHOLDER = "127.0.0.1"


def get_client_ip(request: Request) -> str:
    """Derive the caller IP from proxy headers.

    Priority: first ``X-Forwarded-For`` entry, then ``X-Real-IP``, then a
    loopback placeholder. Pure function of the request headers.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return LOOPBACK_PLACEHOLDER


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at)),
    }
    if not result.success:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


def rate_limit(policy_name: str) -> Callable[..., RateLimitResult | None]:
    """Build a dependency charging one request to ``policy_name``.

    The dependency is a plain function so FastAPI runs it in the threadpool;
    the Redis limiter performs blocking socket I/O.
    """

    def enforce_rate_limit(
        request: Request,
        response: Response,
        guard: Guard = Depends(get_guard),
    ) -> RateLimitResult | None:
        """Consume one unit of the caller's budget or raise HTTP 429."""

        if not settings.rate_limit.enabled:
            return None

        policy = guard.policy(policy_name)
        client_ip = get_client_ip(request)
        result = guard.rate_limiter.check(client_ip, policy)
        headers = _rate_limit_headers(result) if settings.rate_limit.include_headers else {}

        log_fields = {
            "policy": policy.name,
            "key_hash": hash_prefix(client_ip),
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": policy.window_seconds,
        }

        if result.success:
            logger.info("rate_limit.allowed", extra=log_fields)
            response.headers.update(headers)
            return result

        logger.warning(
            "rate_limit.exceeded",
            extra={**log_fields, "retry_after_s": result.retry_after_seconds},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers=headers or None,
        )

    return enforce_rate_limit
