"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → status by type (400, 403, 409, 502), overridable
  per instance through ``details["http_status"]``
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from survey_guard.core.errors import (
    AppError,
    DomainNotAllowedError,
    DuplicateSubmissionError,
    OriginNotAllowedError,
    UpstreamAppError,
    VerificationAppError,
)
from survey_guard.core.logging import diagnostics_enabled, get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (DomainNotAllowedError, 403),
    (OriginNotAllowedError, 403),
    (DuplicateSubmissionError, 409),
    (UpstreamAppError, 502),
    (VerificationAppError, 400),
)


def status_for(exc: AppError) -> int:
    """Resolve the HTTP status for a domain error."""

    if exc.details and exc.details.get("http_status"):
        return int(exc.details["http_status"])
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors as ``{"error": {code, message, request_id, details?}}``.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the status resolved by ``status_for``.
    """
    status_code = status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = {k: v for k, v in exc.details.items() if k != "http_status"}

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure (with the exception text outside production) and returns a
    generic message; no stack trace reaches the client.
    """
    extra = {
        "error_type": type(exc).__name__,
        "request_path": request.url.path,
        "request_method": request.method,
    }
    if diagnostics_enabled():
        extra["error_msg"] = str(exc)
    logger.error("unhandled_exception", extra=extra)

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Specific handlers are registered before the general fallback.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
