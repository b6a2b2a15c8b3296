"""HTTP middleware: request ID propagation and the browser origin allowlist.

Every request/response pair carries a correlation id: the incoming
``X-Request-ID`` (header name configurable) or a fresh UUID. The id is bound
to contextvars for the duration of the request so guard log lines can be
correlated, and echoed back together with the request duration.

Requests under ``/api/`` that carry an ``Origin`` header outside the
allowlist are refused with 403 before reaching CORS handling or the routes.
Requests without ``Origin`` (server-to-server, curl) pass through.

Usage:
    app.middleware("http")(build_origin_guard(origins, origin_regex))
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Iterable

from fastapi import Request, Response

from survey_guard.core.config import Settings, settings
from survey_guard.core.errors import OriginNotAllowedError
from survey_guard.core.exception_handlers import app_error_handler
from survey_guard.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

API_PATH_PREFIX = "/api/"

DEV_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3000",
)
# Any port on a loopback host is accepted in development.
DEV_ORIGIN_REGEX = r"http://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id, call the next handler, and echo the id back.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with ``X-Request-ID`` and
            ``X-Request-Duration-ms`` headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


def parse_origins(origins_string: str | None) -> list[str]:
    """Parse a comma-separated origin list, dropping blanks and trailing slashes.

    Examples:
        >>> parse_origins("https://survey.example.com, http://localhost:3000/")
        ['https://survey.example.com', 'http://localhost:3000']
        >>> parse_origins(None)
        []
    """
    if not origins_string:
        return []

    return [origin.strip().rstrip("/") for origin in origins_string.split(",") if origin.strip()]


def resolve_allowed_origins(config: Settings = settings) -> list[str]:
    """Configured origins, plus the local front-end ports in development."""
    origins = parse_origins(config.app.allowed_origins)
    if config.is_development:
        origins.extend(origin for origin in DEV_ORIGINS if origin not in origins)
    return origins


def resolve_origin_regex(config: Settings = settings) -> str | None:
    return DEV_ORIGIN_REGEX if config.is_development else None


def is_origin_allowed(origin: str, allowed: Iterable[str], origin_regex: str | None = None) -> bool:
    if origin in allowed:
        return True
    return bool(origin_regex and re.fullmatch(origin_regex, origin))


def build_origin_guard(allowed: Iterable[str], origin_regex: str | None = None):
    """Create the middleware refusing disallowed origins on API routes.

    Args:
        allowed: Exact origins accepted.
        origin_regex: Optional full-match pattern for additional origins.

    Returns:
        An ``http`` middleware callable for ``app.middleware("http")``.
    """
    allowed_origins = frozenset(allowed)

    async def origin_guard_middleware(request: Request, call_next) -> Response:
        origin = request.headers.get("origin")
        if (
            origin
            and request.url.path.startswith(API_PATH_PREFIX)
            and not is_origin_allowed(origin, allowed_origins, origin_regex)
        ):
            logger.warning(
                "origin.rejected",
                extra={"origin": origin, "method": request.method, "request_path": request.url.path},
            )
            return await app_error_handler(
                request,
                OriginNotAllowedError(code="origin_not_allowed", message="Origin not allowed"),
            )
        return await call_next(request)

    return origin_guard_middleware
