"""Tests for the one-time code manager.

Every case builds its own store and manager around a fake clock.
"""

import re
import threading
from collections import Counter
from unittest.mock import MagicMock

import pytest
import redis

from survey_guard.adapters.store.failover import FailoverKeyValueStore
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.adapters.store.redis_store import RedisKeyValueStore
from survey_guard.services.verification_service import (
    VerificationCodeManager,
    VerificationResult,
    normalize_email,
)

DOMAIN = "castel-afrique.com"
EMAIL = f"jane.doe@{DOMAIN}"


@pytest.fixture
def store(clock) -> LocalKeyValueStore:
    return LocalKeyValueStore(clock=clock)


@pytest.fixture
def manager(store, clock) -> VerificationCodeManager:
    return VerificationCodeManager(store, allowed_domain=DOMAIN, clock=clock)


def _wrong(code: str) -> str:
    return f"{(int(code) + 1) % 1_000_000:06d}"


class TestGenerateCode:
    def test_codes_are_six_digits_and_uniform(self, manager: VerificationCodeManager) -> None:
        trials = 100_000
        leading = Counter()
        trailing = Counter()
        for _ in range(trials):
            code = manager.generate_code(6)
            assert re.fullmatch(r"[0-9]{6}", code)
            leading[code[0]] += 1
            trailing[code[-1]] += 1

        # Leading digit spans 1-9, trailing digit 0-9, each about evenly.
        assert set(leading) == set("123456789")
        for count in leading.values():
            assert abs(count - trials / 9) < trials / 9 * 0.1
        assert set(trailing) == set("0123456789")
        for count in trailing.values():
            assert abs(count - trials / 10) < trials / 10 * 0.1

    def test_respects_configured_length(self, store, clock) -> None:
        manager = VerificationCodeManager(store, allowed_domain=DOMAIN, code_length=8, clock=clock)

        assert len(manager.generate_code()) == 8
        assert len(manager.issue_code(EMAIL)) == 8


class TestVerifyCode:
    def test_round_trip(self, manager: VerificationCodeManager) -> None:
        manager.save_code(EMAIL, "123456")

        assert manager.verify_code(EMAIL, "123456") == VerificationResult(ok=True)

    def test_key_is_normalized_email(self, manager: VerificationCodeManager) -> None:
        manager.save_code("  Jane.Doe@CASTEL-AFRIQUE.com ", "123456")

        assert manager.verify_code(EMAIL, "123456").ok is True

    def test_consumption_is_single_use(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)
        assert manager.verify_code(EMAIL, code).ok is True

        second = manager.verify_code(EMAIL, code)
        assert second.ok is False
        assert second.reason == "not_found"

    def test_unknown_email_is_not_found(self, manager: VerificationCodeManager) -> None:
        result = manager.verify_code(EMAIL, "123456")

        assert result == VerificationResult(ok=False, reason="not_found")

    def test_attempts_exhaustion(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)

        results = [manager.verify_code(EMAIL, _wrong(code)) for _ in range(3)]
        assert [r.reason for r in results] == ["invalid"] * 3
        assert [r.attempts_left for r in results] == [2, 1, 0]

        # Even the right code is refused once attempts are spent.
        fourth = manager.verify_code(EMAIL, code)
        assert fourth.reason == "attempts_exceeded"
        assert manager.verify_code(EMAIL, code).reason == "not_found"

    def test_exhaustion_allows_immediate_reissue(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)
        for _ in range(4):
            manager.verify_code(EMAIL, _wrong(code))

        fresh = manager.issue_code(EMAIL)
        assert manager.verify_code(EMAIL, fresh).ok is True

    def test_expired_code_reports_expired(self, manager: VerificationCodeManager, clock) -> None:
        code = manager.issue_code(EMAIL)

        clock.advance(300)
        result = manager.verify_code(EMAIL, code)

        assert result.ok is False
        assert result.reason == "expired"
        assert manager.verify_code(EMAIL, code).reason == "not_found"

    def test_expired_entry_dropped_after_grace(self, manager: VerificationCodeManager, clock) -> None:
        code = manager.issue_code(EMAIL)

        clock.advance(300 + 60)

        assert manager.verify_code(EMAIL, code).reason == "not_found"

    def test_wrong_attempt_does_not_extend_expiry(self, manager: VerificationCodeManager, clock) -> None:
        code = manager.issue_code(EMAIL)
        clock.advance(200)
        manager.verify_code(EMAIL, _wrong(code))

        clock.advance(100)

        assert manager.verify_code(EMAIL, code).reason == "expired"

    def test_reissue_invalidates_previous_code(self, manager: VerificationCodeManager) -> None:
        manager.save_code(EMAIL, "111111")
        manager.save_code(EMAIL, "222222")

        first = manager.verify_code(EMAIL, "111111")
        assert first.ok is False
        assert first.reason == "invalid"
        assert manager.verify_code(EMAIL, "222222").ok is True

    def test_reissue_resets_attempts(self, manager: VerificationCodeManager) -> None:
        manager.save_code(EMAIL, "111111")
        manager.verify_code(EMAIL, "999999")
        manager.verify_code(EMAIL, "999999")

        manager.save_code(EMAIL, "222222")

        assert manager.verify_code(EMAIL, "999999").attempts_left == 2

    def test_clear_code(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)

        manager.clear_code(EMAIL.upper())

        assert manager.verify_code(EMAIL, code).reason == "not_found"

    def test_store_holds_hash_not_code(self, manager: VerificationCodeManager, store) -> None:
        manager.save_code(EMAIL, "123456")

        entry = store.get(EMAIL)
        assert "123456" not in str(entry)
        assert entry["attempts"] == 0

    def test_hmac_secret_changes_hash(self, store, clock) -> None:
        plain = VerificationCodeManager(store, allowed_domain=DOMAIN, clock=clock)
        peppered = VerificationCodeManager(store, allowed_domain=DOMAIN, hash_secret="pepper", clock=clock)

        assert plain.hash_code("123456") != peppered.hash_code("123456")
        peppered.save_code(EMAIL, "123456")
        assert peppered.verify_code(EMAIL, "123456").ok is True

    def test_concurrent_checks_consume_once(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)
        results: list[VerificationResult] = []
        lock = threading.Lock()
        barrier = threading.Barrier(10)

        def _worker() -> None:
            barrier.wait()
            result = manager.verify_code(EMAIL, code)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=_worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r.ok) == 1
        assert {r.reason for r in results if not r.ok} == {"not_found"}

    def test_concurrent_wrong_guesses_never_exceed_budget(self, manager: VerificationCodeManager) -> None:
        code = manager.issue_code(EMAIL)
        results: list[VerificationResult] = []
        lock = threading.Lock()
        barrier = threading.Barrier(12)

        def _worker() -> None:
            barrier.wait()
            result = manager.verify_code(EMAIL, _wrong(code))
            with lock:
                results.append(result)

        threads = [threading.Thread(target=_worker) for _ in range(12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        invalid = [r for r in results if r.reason == "invalid"]
        assert sorted(r.attempts_left for r in invalid) == [0, 1, 2]

    def test_works_through_failover_when_primary_down(self, clock) -> None:
        client = MagicMock(spec=redis.Redis)
        client.set.side_effect = redis.RedisError("down")
        client.pipeline.side_effect = redis.RedisError("down")
        store = FailoverKeyValueStore(
            RedisKeyValueStore(client, namespace="verification"),
            LocalKeyValueStore(clock=clock),
            namespace="verification",
        )
        manager = VerificationCodeManager(store, allowed_domain=DOMAIN, clock=clock)

        code = manager.issue_code(EMAIL)

        assert manager.verify_code(EMAIL, code).ok is True


class TestDomainGate:
    @pytest.mark.parametrize(
        "email",
        [f"user@{DOMAIN}", f"USER@{DOMAIN.upper()}", f"  First.Last@{DOMAIN} "],
    )
    def test_allowed(self, manager: VerificationCodeManager, email: str) -> None:
        assert manager.is_allowed_domain(normalize_email(email)) is True

    @pytest.mark.parametrize(
        "email",
        [
            "user@other.com",
            f"user@sub.{DOMAIN}",
            f"user@{DOMAIN}.evil.com",
            f"@{DOMAIN}",
            f"a@b@{DOMAIN}",
            "not-an-email",
        ],
    )
    def test_rejected(self, manager: VerificationCodeManager, email: str) -> None:
        assert manager.is_allowed_domain(email) is False


@pytest.mark.parametrize(
    "kwargs",
    [{"ttl_seconds": 0}, {"max_attempts": 0}, {"code_length": 0}],
)
def test_invalid_constructor_args(store, kwargs: dict) -> None:
    with pytest.raises(ValueError):
        VerificationCodeManager(store, allowed_domain=DOMAIN, **kwargs)
