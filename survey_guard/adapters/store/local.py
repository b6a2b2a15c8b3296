"""In-process fallback store with optional JSON file persistence.

Notes:
- Per-process only: each worker has its own view of the data.
- Thread-safe: updates to the same key are serialized by a lock stripe;
  the shared map and the file are guarded by a separate lock.
- Persistence: when ``persist_path`` is set, every mutation rewrites the whole
  document (expired entries purged first) through an atomic file replace.
  The document maps each key to its bare value, e.g. normalized email to
  ``{code_hash, expires_at, attempts}``; on load the expiry is read back
  from the value's ``expires_at`` field (plus a per-namespace grace).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from survey_guard.adapters.store.base import (
    AbstractKeyValueStore,
    JsonValue,
    Mutator,
    StoreWrite,
    T,
)
from survey_guard.core.logging import diagnostics_enabled

logger = logging.getLogger(__name__)

# Updates to one key always take the same stripe; unrelated keys rarely contend.
_LOCK_STRIPES = 64


@dataclass
class _Entry:
    value: JsonValue
    expires_at: float


class LocalKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store honoring per-entry expiry."""

    def __init__(
        self,
        *,
        persist_path: str | Path | None = None,
        expiry_field: str = "expires_at",
        expiry_grace_seconds: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store, loading the persisted document if present.

        Args:
            persist_path: JSON document rewritten on every mutation; None keeps
                the store memory-only.
            expiry_field: Value field holding the entry's absolute expiry;
                persisted values must carry it.
            expiry_grace_seconds: Added to ``expiry_field`` when reloading, so
                the reloaded expiry matches the TTL the entry was stored with.
            clock: Time source returning UNIX time in seconds.
        """
        self._persist_path = Path(persist_path) if persist_path else None
        self._expiry_field = expiry_field
        self._expiry_grace_seconds = max(0.0, expiry_grace_seconds)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._state_lock = threading.RLock()
        self._key_locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))
        self._load()

    @property
    def persist_path(self) -> Path | None:
        return self._persist_path

    def _lock_for(self, key: str) -> threading.Lock:
        return self._key_locks[hash(key) % _LOCK_STRIPES]

    def _live_value(self, key: str, now: float) -> JsonValue | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            return None
        return dict(entry.value)

    def get(self, key: str) -> JsonValue | None:
        with self._state_lock:
            return self._live_value(key, self._clock())

    def set(self, key: str, value: JsonValue, ttl_seconds: float) -> None:
        with self._lock_for(key):
            self._apply(key, StoreWrite.put(value, ttl_seconds))

    def delete(self, key: str) -> None:
        with self._lock_for(key):
            self._apply(key, StoreWrite.delete())

    def update(self, key: str, mutator: Mutator[T]) -> T:
        with self._lock_for(key):
            with self._state_lock:
                current = self._live_value(key, self._clock())
            write, result = mutator(current)
            self._apply(key, write)
            return result

    def ping(self) -> bool:
        return True

    def purge_expired(self) -> int:
        """Remove every entry whose expiry has passed.

        Safe to run concurrently with normal traffic: only already-expired
        entries are removed, and removal is idempotent.

        Returns:
            Number of entries removed.
        """
        with self._state_lock:
            removed = self._purge_locked(self._clock())
            if removed:
                self._persist_locked()
        if removed:
            logger.debug("store.fallback_purged", extra={"removed": removed})
        return removed

    def __len__(self) -> int:
        with self._state_lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def _apply(self, key: str, write: StoreWrite) -> None:
        if write.action == "keep":
            return
        with self._state_lock:
            now = self._clock()
            if write.action == "put":
                if write.value is None or write.ttl_seconds is None:
                    raise ValueError("put requires a value and a ttl")
                if self._persist_path is not None and self._expiry_field not in write.value:
                    raise ValueError(f"persisted values must carry '{self._expiry_field}'")
                self._entries[key] = _Entry(value=dict(write.value), expires_at=now + write.ttl_seconds)
            else:
                self._entries.pop(key, None)
            # Memory-only stores are left to purge_expired().
            if self._persist_path is not None:
                self._purge_locked(now)
                self._persist_locked()

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _persist_locked(self) -> None:
        if self._persist_path is None:
            return

        document = {key: entry.value for key, entry in self._entries.items()}
        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._persist_path.parent,
                prefix=f".{self._persist_path.name}.",
                suffix=".tmp",
            )
            replaced = False
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle)
                os.replace(tmp_name, self._persist_path)
                replaced = True
            finally:
                if not replaced:
                    with contextlib.suppress(OSError):
                        os.unlink(tmp_name)
        except OSError as exc:
            # The in-memory copy stays authoritative for this process.
            extra = {"path": str(self._persist_path), "entries": len(document)}
            if diagnostics_enabled():
                extra["error_msg"] = str(exc)
            logger.error("store.fallback_persist_failed", extra=extra)

    def _load(self) -> None:
        if self._persist_path is None or not self._persist_path.is_file():
            return

        try:
            raw = json.loads(self._persist_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            extra = {"path": str(self._persist_path)}
            if diagnostics_enabled():
                extra["error_msg"] = str(exc)
            logger.warning("store.fallback_load_failed", extra=extra)
            return

        now = self._clock()
        for key, value in raw.items() if isinstance(raw, dict) else ():
            try:
                expires_at = float(value[self._expiry_field]) + self._expiry_grace_seconds
                entry = _Entry(value=dict(value), expires_at=expires_at)
            except (KeyError, TypeError, ValueError):
                continue
            if entry.expires_at > now:
                self._entries[key] = entry

        logger.info(
            "store.fallback_loaded",
            extra={"path": str(self._persist_path), "entries": len(self._entries)},
        )
