"""Best-effort mail delivery run as background tasks.

A code is saved before its email is sent. A failed send is logged and never
rolls the saved code back; the user can simply request a new code.
"""

from __future__ import annotations

import logging

from survey_guard.adapters.mail.base import AbstractMailer, MailDeliveryError
from survey_guard.core.logging import diagnostics_enabled, hash_prefix, redact_email

logger = logging.getLogger(__name__)


def _log_failure(kind: str, to: str, exc: Exception) -> None:
    extra = {"kind": kind, "recipient_hash": hash_prefix(to), "error_type": type(exc).__name__}
    if diagnostics_enabled():
        extra["error_msg"] = str(exc)
        extra["recipient"] = redact_email(to)
    logger.error("mail.delivery_failed", extra=extra)


async def deliver_verification_code(mailer: AbstractMailer, to: str, code: str) -> bool:
    """Send a verification code; return whether the transport accepted it."""

    try:
        await mailer.send_verification_code(to, code)
    except MailDeliveryError as exc:
        _log_failure("verification_code", to, exc)
        return False
    return True


async def deliver_submission_confirmation(
    mailer: AbstractMailer, to: str, first_name: str, last_name: str
) -> bool:
    """Send a submission confirmation; return whether the transport accepted it."""

    try:
        await mailer.send_submission_confirmation(to, first_name, last_name)
    except MailDeliveryError as exc:
        _log_failure("submission_confirmation", to, exc)
        return False
    return True
