import logging
import re

from fastapi import APIRouter, BackgroundTasks, Depends
from starlette.concurrency import run_in_threadpool

from survey_guard.adapters.mail.base import AbstractMailer
from survey_guard.adapters.rate_limit.policies import CODE_REQUEST, DEFAULT
from survey_guard.api.dependencies import get_guard, get_mailer
from survey_guard.core.errors import DomainNotAllowedError, ValidationAppError, VerificationAppError
from survey_guard.core.guard import Guard
from survey_guard.core.logging import hash_prefix
from survey_guard.core.rate_limit import rate_limit
from survey_guard.schemas.auth import (
    RequestCodeBody,
    RequestCodeResponse,
    VerifyCodeBody,
    VerifyCodeResponse,
)
from survey_guard.services.notifications import deliver_verification_code
from survey_guard.services.verification_service import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# reason -> (HTTP status, message)
_FAILURES = {
    "not_found": (404, "Code not found. Please request a new code."),
    "expired": (410, "Code expired. Please request a new code."),
    "attempts_exceeded": (429, "Too many attempts. Please request a new code."),
    "invalid": (400, "Invalid code."),
}


@router.post(
    "/request-code",
    response_model=RequestCodeResponse,
    dependencies=[Depends(rate_limit(CODE_REQUEST))],
)
async def request_code(
    body: RequestCodeBody,
    background_tasks: BackgroundTasks,
    guard: Guard = Depends(get_guard),
    mailer: AbstractMailer = Depends(get_mailer),
) -> RequestCodeResponse:
    """Issue a one-time code for an address on the allowed domain.

    The email is sent in the background; the response does not wait for the
    transport and a delivery failure does not invalidate the saved code.

    Raises:
        ValidationAppError: 400 when the email is missing.
        DomainNotAllowedError: 403 for addresses outside the allowed domain.
    """
    if not body.email or not body.email.strip():
        raise ValidationAppError(code="email_required", message="Email is required")

    manager = guard.verification
    email = normalize_email(body.email)
    if not manager.is_allowed_domain(email):
        logger.info("verification.domain_rejected", extra={"email_hash": hash_prefix(email)})
        raise DomainNotAllowedError(
            code="domain_not_allowed",
            message=f"Only @{manager.allowed_domain} addresses are allowed",
            details={"allowed_domain": manager.allowed_domain},
        )

    code = await run_in_threadpool(manager.issue_code, email)
    background_tasks.add_task(deliver_verification_code, mailer, email, code)

    return RequestCodeResponse(
        message="Code sent",
        ttl_ms=manager.ttl_ms,
        attempts=manager.max_attempts,
    )


@router.post(
    "/verify-code",
    response_model=VerifyCodeResponse,
    dependencies=[Depends(rate_limit(DEFAULT))],
)
async def verify_code(
    body: VerifyCodeBody,
    guard: Guard = Depends(get_guard),
) -> VerifyCodeResponse:
    """Check a code for an address.

    Raises:
        ValidationAppError: 400 when email/code are missing or the code is malformed.
        VerificationAppError: 404 not_found, 410 expired, 429 attempts_exceeded,
            400 invalid (with ``attempts_left``).
    """
    if not body.email or not body.code:
        raise ValidationAppError(code="email_and_code_required", message="Email and code are required")

    manager = guard.verification
    code_length = manager.code_length
    if not re.fullmatch(rf"[0-9]{{{code_length}}}", body.code):
        raise ValidationAppError(
            code="invalid_code_format",
            message=f"The code must contain exactly {code_length} digits",
        )

    email = normalize_email(body.email)
    result = await run_in_threadpool(manager.verify_code, email, body.code)

    if not result.ok:
        status_code, message = _FAILURES[result.reason or "invalid"]
        if result.reason == "invalid" and result.attempts_left is not None:
            message = f"Invalid code. {result.attempts_left} attempt(s) left."
        details = {
            "http_status": status_code,
            "reason": result.reason,
            "ttl_ms": manager.ttl_ms,
        }
        if result.attempts_left is not None:
            details["attempts_left"] = result.attempts_left
        raise VerificationAppError(code=result.reason or "invalid", message=message, details=details)

    return VerifyCodeResponse(verified=True, email=email, message="Email verified")
