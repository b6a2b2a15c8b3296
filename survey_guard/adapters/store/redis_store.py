"""Redis-backed primary store.

Values are JSON documents under ``<prefix>:<namespace>:<key>`` with native
millisecond expiry. Every redis error (including socket timeouts) is
re-raised as ``StoreUnavailableError`` so the failover store can take over.
"""

from __future__ import annotations

import json
import logging

import redis
from redis.exceptions import RedisError, WatchError

from survey_guard.adapters.store.base import AbstractKeyValueStore, JsonValue, Mutator, T
from survey_guard.core.config import StoreSettings
from survey_guard.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Optimistic transaction attempts before giving up on a contended key
_MAX_TRANSACTION_ATTEMPTS = 5


def create_redis_client(store_settings: StoreSettings) -> redis.Redis:
    """Build a Redis client with bounded socket timeouts.

    Args:
        store_settings: Store configuration; ``redis_url`` must be set.

    Returns:
        A lazily-connecting ``redis.Redis`` instance.
    """
    if not store_settings.redis_url:
        raise ValueError("redis_url must be configured to build a Redis client")

    return redis.Redis.from_url(
        store_settings.redis_url,
        decode_responses=True,
        socket_timeout=store_settings.timeout_seconds,
        socket_connect_timeout=store_settings.timeout_seconds,
    )


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


class RedisKeyValueStore(AbstractKeyValueStore):
    """JSON key/value store on top of a Redis client."""

    def __init__(self, client: redis.Redis, *, namespace: str, key_prefix: str = "survey_guard") -> None:
        self._client = client
        self._namespace = namespace
        self._key_prefix = key_prefix

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}:{self._namespace}:{key}"

    def _decode(self, raw: str | None) -> JsonValue | None:
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("store.primary_corrupt_value", extra={"namespace": self._namespace})
            return None
        return value if isinstance(value, dict) else None

    def get(self, key: str) -> JsonValue | None:
        try:
            raw = self._client.get(self._full_key(key))
        except RedisError as exc:
            raise StoreUnavailableError(f"redis GET failed: {exc}") from exc
        return self._decode(raw)

    def set(self, key: str, value: JsonValue, ttl_seconds: float) -> None:
        try:
            self._client.set(self._full_key(key), json.dumps(value), px=_ttl_ms(ttl_seconds))
        except RedisError as exc:
            raise StoreUnavailableError(f"redis SET failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._full_key(key))
        except RedisError as exc:
            raise StoreUnavailableError(f"redis DEL failed: {exc}") from exc

    def update(self, key: str, mutator: Mutator[T]) -> T:
        """Read-modify-write under WATCH/MULTI, retried when the key changes underneath."""
        full_key = self._full_key(key)

        for _ in range(_MAX_TRANSACTION_ATTEMPTS):
            try:
                with self._client.pipeline() as pipe:
                    pipe.watch(full_key)
                    current = self._decode(pipe.get(full_key))
                    write, result = mutator(current)
                    if write.action == "keep":
                        return result

                    pipe.multi()
                    if write.action == "put":
                        if write.value is None or write.ttl_seconds is None:
                            raise ValueError("put requires a value and a ttl")
                        pipe.set(full_key, json.dumps(write.value), px=_ttl_ms(write.ttl_seconds))
                    else:
                        pipe.delete(full_key)
                    pipe.execute()
                    return result
            except WatchError:
                logger.debug("store.primary_update_retry", extra={"namespace": self._namespace})
                continue
            except RedisError as exc:
                raise StoreUnavailableError(f"redis transaction failed: {exc}") from exc

        raise StoreUnavailableError(
            f"redis transaction aborted after {_MAX_TRANSACTION_ATTEMPTS} contended attempts"
        )

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False
