"""Duplicate-submission prevention.

Remembers, per IP (optionally combined with a browser fingerprint), that a
final submission was accepted. The tracker never blocks a submission on its
own failure: with the primary store down, the failover store answers from the
local fallback, which at worst reports "not yet submitted".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from survey_guard.adapters.store.base import AbstractKeyValueStore
from survey_guard.core.errors import StoreUnavailableError
from survey_guard.core.logging import hash_prefix

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class SubmissionStatus:
    has_submitted: bool
    submitted_at: float | None = None

    @property
    def submitted_at_iso(self) -> str | None:
        if self.submitted_at is None:
            return None
        return datetime.fromtimestamp(self.submitted_at, tz=timezone.utc).isoformat()


class SubmissionTracker:
    """Records accepted submissions for a long retention window."""

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        self._store = store
        self._retention_seconds = retention_seconds
        self._clock = clock

    @staticmethod
    def generate_identifier(ip: str, fingerprint: str | None = None) -> str:
        """Composite identity: ``ip:fingerprint``, or the IP alone.

        The fingerprint only narrows the IP; it is never used on its own.
        """
        if fingerprint:
            return f"{ip}:{fingerprint}"
        return ip

    def check(self, identifier: str) -> SubmissionStatus:
        """Whether ``identifier`` has a submission still within retention."""

        try:
            record = self._store.get(identifier)
        except StoreUnavailableError:
            logger.warning("submission.check_degraded", extra={"identifier_hash": hash_prefix(identifier)})
            return SubmissionStatus(has_submitted=False)

        if record is None:
            return SubmissionStatus(has_submitted=False)

        if float(record.get("expires_at", 0)) <= self._clock():
            self._store.delete(identifier)
            return SubmissionStatus(has_submitted=False)

        return SubmissionStatus(has_submitted=True, submitted_at=float(record["submitted_at"]))

    def record(self, identifier: str, ip: str, fingerprint: str | None = None) -> None:
        """Remember an accepted submission.

        Call only after the workflow backend has durably accepted it.
        """
        now = self._clock()
        try:
            self._store.set(
                identifier,
                {
                    "submitted_at": now,
                    "expires_at": now + self._retention_seconds,
                    "ip": ip,
                    "fingerprint": fingerprint,
                },
                self._retention_seconds,
            )
        except StoreUnavailableError:
            logger.error("submission.record_failed", extra={"identifier_hash": hash_prefix(identifier)})
            return
        logger.info(
            "submission.recorded",
            extra={
                "identifier_hash": hash_prefix(identifier),
                "has_fingerprint": bool(fingerprint),
                "retention_s": self._retention_seconds,
            },
        )

    def clear(self, identifier: str) -> None:
        self._store.delete(identifier)
