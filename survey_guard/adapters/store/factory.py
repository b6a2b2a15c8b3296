"""Factory for building the store used by each guard component."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

import redis

from survey_guard.adapters.store.base import AbstractKeyValueStore
from survey_guard.adapters.store.failover import FailoverKeyValueStore
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.adapters.store.redis_store import RedisKeyValueStore
from survey_guard.core.config import StoreSettings


def fallback_path(store_settings: StoreSettings, namespace: str) -> Path:
    """Location of the fallback JSON document for a namespace."""

    return Path(store_settings.fallback_dir) / f"{namespace}.json"


def create_store(
    store_settings: StoreSettings,
    *,
    namespace: str,
    persist: bool,
    redis_client: redis.Redis | None = None,
    expiry_grace_seconds: float = 0.0,
    clock: Callable[[], float] = time.time,
) -> AbstractKeyValueStore:
    """Choose the store implementation once, at construction time.

    Args:
        store_settings: Store configuration.
        namespace: Logical keyspace (``verification``, ``rate_limit``, ...).
        persist: Whether the local fallback keeps a JSON document on disk.
        redis_client: Primary client; None means the primary is unconfigured.
        expiry_grace_seconds: Store lifetime past a value's own ``expires_at``;
            used to rebuild expiries when the fallback document is reloaded.
        clock: Time source for the local fallback.

    Returns:
        A failover store when a Redis client is given, the local store otherwise.
    """
    local = LocalKeyValueStore(
        persist_path=fallback_path(store_settings, namespace) if persist else None,
        expiry_grace_seconds=expiry_grace_seconds,
        clock=clock,
    )
    if redis_client is None:
        return local

    primary = RedisKeyValueStore(
        redis_client,
        namespace=namespace,
        key_prefix=store_settings.key_prefix,
    )
    return FailoverKeyValueStore(primary, local, namespace=namespace)


def local_store_of(store: AbstractKeyValueStore) -> LocalKeyValueStore | None:
    """Return the local store backing ``store`` (itself or its fallback)."""

    if isinstance(store, LocalKeyValueStore):
        return store
    if isinstance(store, FailoverKeyValueStore):
        return store.fallback
    return None
