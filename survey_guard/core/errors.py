"""Application-level exception types.

Expected guard outcomes (verification failures, duplicates, disallowed
domains) are returned as result values by the services; the HTTP layer turns
them into these errors so the global handlers can render a consistent body.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    http_status: int
    reason: str
    attempts_left: int
    ttl_ms: int
    submitted_at: str
    allowed_domain: str
    errors: list[str]
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input is malformed."""


class DomainNotAllowedError(AppError):
    """Raised when a code is requested for an address outside the allowed domain."""


class VerificationAppError(AppError):
    """Raised when a submitted code is not accepted.

    ``details["http_status"]`` carries the status matching the failure reason.
    """


class DuplicateSubmissionError(AppError):
    """Raised when the caller already has an accepted submission on record."""


class OriginNotAllowedError(AppError):
    """Raised when a browser origin outside the allowlist calls an API route."""


class UpstreamAppError(AppError):
    """Raised when the workflow backend rejects or fails to answer a submission."""


class StoreUnavailableError(Exception):
    """Raised by primary store adapters on any backend failure or timeout.

    Never crosses the store layer: the failover store catches it and routes the
    call to the local fallback.
    """
