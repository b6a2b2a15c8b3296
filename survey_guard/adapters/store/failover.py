"""Primary-with-fallback composition of two stores.

Callers never observe a primary outage: every ``StoreUnavailableError`` is
logged and the same call is replayed against the local fallback. A missing
key and an unreachable primary therefore look the same to application code.
"""

from __future__ import annotations

import logging

from survey_guard.adapters.store.base import AbstractKeyValueStore, JsonValue, Mutator, T
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.core.errors import StoreUnavailableError
from survey_guard.core.logging import diagnostics_enabled

logger = logging.getLogger(__name__)


class FailoverKeyValueStore(AbstractKeyValueStore):
    """Route calls to ``primary``; on failure, to ``fallback``."""

    def __init__(self, primary: AbstractKeyValueStore, fallback: LocalKeyValueStore, *, namespace: str) -> None:
        self._primary = primary
        self._fallback = fallback
        self._namespace = namespace

    @property
    def primary(self) -> AbstractKeyValueStore:
        return self._primary

    @property
    def fallback(self) -> LocalKeyValueStore:
        return self._fallback

    def _log_failure(self, operation: str, exc: StoreUnavailableError) -> None:
        extra = {"namespace": self._namespace, "operation": operation}
        if diagnostics_enabled():
            extra["error_msg"] = str(exc)
        logger.warning("store.primary_failed", extra=extra)

    def get(self, key: str) -> JsonValue | None:
        try:
            return self._primary.get(key)
        except StoreUnavailableError as exc:
            self._log_failure("get", exc)
            return self._fallback.get(key)

    def set(self, key: str, value: JsonValue, ttl_seconds: float) -> None:
        try:
            self._primary.set(key, value, ttl_seconds)
        except StoreUnavailableError as exc:
            self._log_failure("set", exc)
            self._fallback.set(key, value, ttl_seconds)

    def delete(self, key: str) -> None:
        try:
            self._primary.delete(key)
        except StoreUnavailableError as exc:
            self._log_failure("delete", exc)
            self._fallback.delete(key)

    def update(self, key: str, mutator: Mutator[T]) -> T:
        try:
            return self._primary.update(key, mutator)
        except StoreUnavailableError as exc:
            self._log_failure("update", exc)
            return self._fallback.update(key, mutator)

    def ping(self) -> bool:
        return self._primary.ping()

    @property
    def backend_name(self) -> str:
        return f"{self._primary.backend_name}+{self._fallback.backend_name}"
