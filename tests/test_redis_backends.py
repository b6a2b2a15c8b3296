"""Redis-backed limiter and store run against an in-process Redis server.

``fakeredis`` executes the sliding-window Lua script and the WATCH/MULTI
transactions for real, so boundary and contention behavior is exercised
without a network service.
"""

from unittest.mock import Mock

import fakeredis
import pytest

from survey_guard.adapters.rate_limit.base import RateLimitPolicy
from survey_guard.adapters.rate_limit.redis_sliding import RedisSlidingWindowRateLimiter
from survey_guard.adapters.rate_limit.window_counter import WindowCounterRateLimiter
from survey_guard.adapters.store.base import StoreWrite
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.adapters.store.redis_store import RedisKeyValueStore
from survey_guard.core.errors import StoreUnavailableError
from survey_guard.services.verification_service import VerificationCodeManager

FIVE_PER_MINUTE = RateLimitPolicy(name="default", max_requests=5, window_seconds=60)


@pytest.fixture
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=server, decode_responses=True)


def _sliding(client, clock) -> RedisSlidingWindowRateLimiter:
    fallback = WindowCounterRateLimiter(LocalKeyValueStore(clock=clock), clock=clock)
    return RedisSlidingWindowRateLimiter(client, fallback=fallback, key_prefix="sg", clock=clock)


class TestSlidingWindowScript:
    def test_fifth_call_allowed_sixth_blocked(self, redis_client) -> None:
        clock = Mock(return_value=1000.0)
        limiter = _sliding(redis_client, clock)

        results = [limiter.check("1.2.3.4", FIVE_PER_MINUTE) for _ in range(5)]
        assert all(result.success for result in results)
        assert [result.remaining for result in results] == [4, 3, 2, 1, 0]

        blocked = limiter.check("1.2.3.4", FIVE_PER_MINUTE)
        assert blocked.success is False
        assert blocked.remaining == 0
        assert blocked.reset_at == 1060.0
        assert blocked.retry_after_seconds == 60
        assert redis_client.zcard("sg:rate_limit:default:1.2.3.4") == 5

    def test_window_rollover_starts_fresh(self, redis_client) -> None:
        clock = Mock(return_value=1000.0)
        limiter = _sliding(redis_client, clock)
        for _ in range(6):
            limiter.check("1.2.3.4", FIVE_PER_MINUTE)

        clock.return_value = 1059.999
        assert limiter.check("1.2.3.4", FIVE_PER_MINUTE).success is False

        clock.return_value = 1060.0
        result = limiter.check("1.2.3.4", FIVE_PER_MINUTE)

        assert result.success is True
        assert result.remaining == FIVE_PER_MINUTE.max_requests - 1
        assert result.reset_at == 1120.0

    def test_budget_frees_as_old_requests_age_out(self, redis_client) -> None:
        clock = Mock(return_value=1000.0)
        limiter = _sliding(redis_client, clock)
        for _ in range(3):
            limiter.check("1.2.3.4", FIVE_PER_MINUTE)
        clock.return_value = 1030.0
        for _ in range(2):
            limiter.check("1.2.3.4", FIVE_PER_MINUTE)

        clock.return_value = 1060.0
        results = [limiter.check("1.2.3.4", FIVE_PER_MINUTE) for _ in range(4)]

        assert [result.success for result in results] == [True, True, True, False]
        assert results[-1].reset_at == 1090.0

    def test_policies_and_identifiers_are_isolated(self, redis_client) -> None:
        clock = Mock(return_value=1000.0)
        limiter = _sliding(redis_client, clock)
        submit = RateLimitPolicy(name="submit", max_requests=1, window_seconds=60)

        assert limiter.check("1.2.3.4", submit).success is True
        assert limiter.check("1.2.3.4", submit).success is False
        assert limiter.check("1.2.3.4", FIVE_PER_MINUTE).success is True
        assert limiter.check("5.6.7.8", submit).success is True

    def test_key_expires_with_the_window(self, redis_client) -> None:
        limiter = _sliding(redis_client, Mock(return_value=1000.0))

        limiter.check("1.2.3.4", FIVE_PER_MINUTE)

        assert 0 < redis_client.pttl("sg:rate_limit:default:1.2.3.4") <= 60_000


class TestRedisKeyValueStoreTransactions:
    def test_update_round_trip_with_native_expiry(self, redis_client) -> None:
        store = RedisKeyValueStore(redis_client, namespace="verification", key_prefix="sg")

        seen = store.update("k", lambda current: (StoreWrite.put({"n": 1}, 30), current))
        assert seen is None
        assert store.get("k") == {"n": 1}
        assert 0 < redis_client.pttl("sg:verification:k") <= 30_000

        kept = store.update("k", lambda current: (StoreWrite.keep(), current["n"]))
        assert kept == 1

        store.update("k", lambda current: (StoreWrite.delete(), None))
        assert store.get("k") is None
        assert redis_client.exists("sg:verification:k") == 0

    def test_concurrent_write_forces_retry_on_fresh_value(self, server, redis_client) -> None:
        store = RedisKeyValueStore(redis_client, namespace="rate_limit", key_prefix="sg")
        other = fakeredis.FakeRedis(server=server, decode_responses=True)
        seen: list[dict | None] = []

        def _increment(current):
            seen.append(current)
            if len(seen) == 1:
                # Another worker commits between WATCH and EXEC.
                other.set("sg:rate_limit:k", '{"count": 10}', px=60_000)
            count = (current or {}).get("count", 0) + 1
            return StoreWrite.put({"count": count}, 60), count

        result = store.update("k", _increment)

        assert seen == [None, {"count": 10}]
        assert result == 11
        assert store.get("k") == {"count": 11}

    def test_permanent_contention_raises_unavailable(self, server, redis_client) -> None:
        store = RedisKeyValueStore(redis_client, namespace="rate_limit", key_prefix="sg")
        other = fakeredis.FakeRedis(server=server, decode_responses=True)
        calls = []

        def _always_contended(current):
            calls.append(current)
            other.set("sg:rate_limit:k", f'{{"count": {len(calls)}}}')
            return StoreWrite.put({"count": 0}, 60), None

        with pytest.raises(StoreUnavailableError):
            store.update("k", _always_contended)

        assert len(calls) == 5

    def test_verification_attempts_over_redis(self, redis_client) -> None:
        clock = Mock(return_value=1000.0)
        store = RedisKeyValueStore(redis_client, namespace="verification", key_prefix="sg")
        manager = VerificationCodeManager(store, allowed_domain="castel-afrique.com", clock=clock)
        code = manager.issue_code("jane.doe@castel-afrique.com")
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"

        results = [manager.verify_code("jane.doe@castel-afrique.com", wrong) for _ in range(3)]
        assert [r.attempts_left for r in results] == [2, 1, 0]

        assert manager.verify_code("jane.doe@castel-afrique.com", code).reason == "attempts_exceeded"
        assert redis_client.exists("sg:verification:jane.doe@castel-afrique.com") == 0
