"""Email one-time code issuance and verification.

One outstanding code per normalized email. Entries hold only a hash of the
code, an absolute expiry and a failed-attempt counter:

    absent -> pending(attempts=k) -> consumed | expired | exhausted

Every terminal state deletes the entry. Each check runs as a single atomic
``store.update`` so two concurrent attempts for the same address cannot both
act on a stale counter.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Literal

from survey_guard.adapters.store.base import AbstractKeyValueStore, JsonValue, StoreWrite
from survey_guard.core.logging import diagnostics_enabled, hash_prefix

logger = logging.getLogger(__name__)

FailureReason = Literal["not_found", "expired", "attempts_exceeded", "invalid"]


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of ``verify_code``.

    Attributes:
        ok: True when the code matched (the entry is consumed).
        reason: Failure reason when ``ok`` is False.
        attempts_left: Remaining attempts, only for ``invalid``.
    """

    ok: bool
    reason: FailureReason | None = None
    attempts_left: int | None = None


@dataclass(frozen=True)
class VerificationEntry:
    code_hash: str
    expires_at: float
    attempts: int = 0

    def to_json(self) -> JsonValue:
        return {"code_hash": self.code_hash, "expires_at": self.expires_at, "attempts": self.attempts}

    @classmethod
    def from_json(cls, raw: JsonValue) -> "VerificationEntry":
        return cls(
            code_hash=str(raw["code_hash"]),
            expires_at=float(raw["expires_at"]),
            attempts=int(raw.get("attempts", 0)),
        )


def normalize_email(email: str) -> str:
    """Trim and lower-case an address; the result is the verification key."""

    return email.strip().lower()


class VerificationCodeManager:
    """Issues and checks numeric one-time codes keyed by normalized email."""

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        allowed_domain: str,
        ttl_seconds: float = 300,
        max_attempts: int = 3,
        code_length: int = 6,
        expired_grace_seconds: float = 60,
        hash_secret: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Store holding one entry per normalized email.
            allowed_domain: The single domain allowed to request codes.
            ttl_seconds: Lifetime of an issued code.
            max_attempts: Failed checks tolerated before the code is burned.
            code_length: Digits per generated code.
            expired_grace_seconds: Extra store lifetime past expiry so a late
                check reports ``expired`` rather than ``not_found``.
            hash_secret: Optional HMAC key for code hashes.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If numeric limits are invalid.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if code_length < 1:
            raise ValueError("code_length must be >= 1")

        self._store = store
        self._allowed_domain = allowed_domain.strip().lower()
        self._ttl_seconds = ttl_seconds
        self._max_attempts = max_attempts
        self._code_length = code_length
        self._grace_seconds = max(0.0, expired_grace_seconds)
        self._hash_key = hash_secret.encode("utf-8") if hash_secret else None
        self._clock = clock

    @property
    def allowed_domain(self) -> str:
        return self._allowed_domain

    @property
    def ttl_ms(self) -> int:
        return int(self._ttl_seconds * 1000)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def code_length(self) -> int:
        return self._code_length

    normalize_email = staticmethod(normalize_email)

    def is_allowed_domain(self, email: str) -> bool:
        """Whether the address belongs to the configured domain."""

        parts = normalize_email(email).split("@")
        return len(parts) == 2 and bool(parts[0]) and parts[1] == self._allowed_domain

    def generate_code(self, length: int | None = None) -> str:
        """Uniform random code of exactly ``length`` decimal digits.

        Drawn from ``[10**(length-1), 10**length - 1]`` with ``secrets``.
        """
        n = length or self._code_length
        low = 10 ** (n - 1)
        high = 10**n - 1
        return str(low + secrets.randbelow(high - low + 1))

    def hash_code(self, code: str) -> str:
        if self._hash_key is not None:
            return hmac.new(self._hash_key, code.encode("utf-8"), hashlib.sha256).hexdigest()
        return hashlib.sha256(code.encode("utf-8")).hexdigest()

    def save_code(self, email: str, code: str) -> None:
        """Store a fresh entry for ``email``, replacing any outstanding code."""

        key = normalize_email(email)
        entry = VerificationEntry(
            code_hash=self.hash_code(code),
            expires_at=self._clock() + self._ttl_seconds,
        )
        self._store.set(key, entry.to_json(), self._ttl_seconds + self._grace_seconds)

        extra = {"email_hash": hash_prefix(key), "ttl_s": self._ttl_seconds}
        if diagnostics_enabled():
            extra["code_hash_prefix"] = entry.code_hash[:8]
        logger.info("verification.code_saved", extra=extra)

    def issue_code(self, email: str) -> str:
        """Generate, store and return a new code for ``email``."""

        code = self.generate_code()
        self.save_code(email, code)
        return code

    def verify_code(self, email: str, code: str) -> VerificationResult:
        """Check ``code`` against the outstanding entry for ``email``.

        Returns:
            ``ok=True`` on a match (entry consumed); otherwise the failure
            reason, with ``attempts_left`` for a wrong code.
        """
        key = normalize_email(email)
        candidate = self.hash_code(code)
        now = self._clock()

        def _check(raw: JsonValue | None) -> tuple[StoreWrite, VerificationResult]:
            if raw is None:
                return StoreWrite.keep(), VerificationResult(ok=False, reason="not_found")

            entry = VerificationEntry.from_json(raw)
            if now >= entry.expires_at:
                return StoreWrite.delete(), VerificationResult(ok=False, reason="expired")
            if entry.attempts >= self._max_attempts:
                return StoreWrite.delete(), VerificationResult(ok=False, reason="attempts_exceeded")

            if not hmac.compare_digest(entry.code_hash, candidate):
                attempts = entry.attempts + 1
                updated = VerificationEntry(
                    code_hash=entry.code_hash,
                    expires_at=entry.expires_at,
                    attempts=attempts,
                )
                remaining_ttl = entry.expires_at - now + self._grace_seconds
                return (
                    StoreWrite.put(updated.to_json(), remaining_ttl),
                    VerificationResult(
                        ok=False,
                        reason="invalid",
                        attempts_left=self._max_attempts - attempts,
                    ),
                )

            return StoreWrite.delete(), VerificationResult(ok=True)

        result = self._store.update(key, _check)

        logger.info(
            "verification.checked",
            extra={
                "email_hash": hash_prefix(key),
                "ok": result.ok,
                "reason": result.reason,
                "attempts_left": result.attempts_left,
            },
        )
        return result

    def clear_code(self, email: str) -> None:
        """Drop any outstanding code for ``email``."""

        self._store.delete(normalize_email(email))
