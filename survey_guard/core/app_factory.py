"""Application factory for the FastAPI app.

Centralizes app construction (guard wiring, collaborators, middleware,
handlers, routers, background cleanup) so tests can build isolated apps.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from survey_guard.adapters.mail.base import AbstractMailer
from survey_guard.adapters.mail.smtp_client import SmtpMailer
from survey_guard.adapters.workflow.base import AbstractWorkflowClient
from survey_guard.adapters.workflow.http_client import HttpWorkflowClient
from survey_guard.api.routes import auth_router, health_router, submit_router
from survey_guard.core.config import settings
from survey_guard.core.exception_handlers import setup_exception_handlers
from survey_guard.core.guard import Guard, build_guard, run_cleanup_loop
from survey_guard.core.logging import configure_logging
from survey_guard.core.middleware import (
    build_origin_guard,
    request_id_middleware,
    resolve_allowed_origins,
    resolve_origin_regex,
)


def create_app(
    *,
    guard: Guard | None = None,
    mailer: AbstractMailer | None = None,
    workflow_client: AbstractWorkflowClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        guard: Prebuilt guard; built from settings when omitted.
        mailer: Mail transport; SMTP from settings when omitted.
        workflow_client: Workflow backend client; HTTP from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    guard = guard or build_guard(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = asyncio.create_task(
            run_cleanup_loop(app.state.guard, settings.store.cleanup_interval_seconds)
        )
        try:
            yield
        finally:
            cleanup.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup

    app = FastAPI(
        title=settings.app.title,
        description=(
            "Access-control guard for the satisfaction survey: email one-time "
            "codes, per-client rate limiting and duplicate-submission "
            "suppression in front of the workflow backend."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.state.guard = guard
    app.state.mailer = mailer or SmtpMailer(
        settings.smtp,
        ttl_minutes=max(1, settings.verification.code_ttl_seconds // 60),
    )
    app.state.workflow_client = workflow_client or HttpWorkflowClient(
        settings.workflow.submit_url,
        timeout_seconds=settings.workflow.timeout_seconds,
    )

    # Middleware: the last one added runs first.
    allowed_origins = resolve_allowed_origins(settings)
    origin_regex = resolve_origin_regex(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", settings.log.request_id_header, "X-Browser-Fingerprint"],
        expose_headers=[
            settings.log.request_id_header,
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
        max_age=86400,
    )
    app.middleware("http")(build_origin_guard(allowed_origins, origin_regex))
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(submit_router)
    app.include_router(health_router)

    return app
