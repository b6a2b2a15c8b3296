"""Central rate limit policies."""

from __future__ import annotations

from survey_guard.adapters.rate_limit.base import RateLimitPolicy
from survey_guard.core.config import RateLimitSettings

SUBMIT = "submit"
# Reserved for the questions proxy (question fetches forwarded to the
# workflow backend); no route in this service draws on it yet.
QUESTIONS = "questions"
CODE_REQUEST = "code_request"
DEFAULT = "default"

POLICY_NAMES = (SUBMIT, QUESTIONS, CODE_REQUEST, DEFAULT)


def build_policies(rate_settings: RateLimitSettings) -> dict[str, RateLimitPolicy]:
    """Build every named policy from settings.

    Each policy reads ``<name>_requests`` and ``<name>_window_seconds``.
    """

    return {
        name: RateLimitPolicy(
            name=name,
            max_requests=getattr(rate_settings, f"{name}_requests"),
            window_seconds=getattr(rate_settings, f"{name}_window_seconds"),
        )
        for name in POLICY_NAMES
    }


__all__ = [
    "SUBMIT",
    "QUESTIONS",
    "CODE_REQUEST",
    "DEFAULT",
    "POLICY_NAMES",
    "build_policies",
]
