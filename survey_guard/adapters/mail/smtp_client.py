"""SMTP mail transport built on aiosmtplib."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from survey_guard.adapters.mail.base import AbstractMailer, MailDeliveryError
from survey_guard.adapters.mail.templates import (
    render_submission_confirmation,
    render_verification_code,
)
from survey_guard.core.config import SmtpSettings
from survey_guard.core.logging import hash_prefix

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Votre code de vérification - Enquête de satisfaction"
CONFIRMATION_SUBJECT = "Confirmation de soumission - Enquête de satisfaction"


class SmtpMailer(AbstractMailer):
    """Send multipart (text + HTML) messages through an SMTP relay."""

    def __init__(self, smtp_settings: SmtpSettings, *, ttl_minutes: int = 5) -> None:
        self._settings = smtp_settings
        self._ttl_minutes = ttl_minutes

    @property
    def sender(self) -> str:
        if self._settings.sender:
            return self._settings.sender.strip()
        return f"Enquête Satisfaction <{(self._settings.user or '').strip()}>"

    def _build_message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def _send(self, message: EmailMessage, *, kind: str) -> None:
        cfg = self._settings
        if not cfg.host or not cfg.user or not cfg.password:
            raise MailDeliveryError("SMTP is not configured: set SMTP_HOST, SMTP_USER and SMTP_PASSWORD")

        try:
            await aiosmtplib.send(
                message,
                hostname=cfg.host,
                port=cfg.port,
                username=cfg.user.strip(),
                # App passwords are often displayed with spaces for readability
                password="".join(cfg.password.split()),
                use_tls=cfg.use_tls,
                timeout=cfg.timeout_seconds,
            )
        except aiosmtplib.SMTPAuthenticationError as exc:
            raise MailDeliveryError(
                "SMTP authentication failed: check SMTP_USER and the application password"
            ) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"SMTP delivery failed: {exc}") from exc

        logger.info("mail.sent", extra={"kind": kind, "recipient_hash": hash_prefix(str(message["To"]))})

    async def send_verification_code(self, to: str, code: str) -> None:
        text, html = render_verification_code(code, ttl_minutes=self._ttl_minutes)
        await self._send(self._build_message(to, VERIFICATION_SUBJECT, text, html), kind="verification_code")

    async def send_submission_confirmation(self, to: str, first_name: str, last_name: str) -> None:
        text, html = render_submission_confirmation(first_name, last_name)
        await self._send(
            self._build_message(to, CONFIRMATION_SUBJECT, text, html),
            kind="submission_confirmation",
        )
