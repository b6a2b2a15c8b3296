"""Tests for duplicate-submission tracking."""

from unittest.mock import MagicMock

import pytest
import redis

from survey_guard.adapters.store.failover import FailoverKeyValueStore
from survey_guard.adapters.store.local import LocalKeyValueStore
from survey_guard.adapters.store.redis_store import RedisKeyValueStore
from survey_guard.core.errors import StoreUnavailableError
from survey_guard.services.submission_tracker import SubmissionStatus, SubmissionTracker

DAY = 24 * 60 * 60


@pytest.fixture
def tracker(clock) -> SubmissionTracker:
    return SubmissionTracker(LocalKeyValueStore(clock=clock), retention_seconds=30 * DAY, clock=clock)


def test_identifier_composition() -> None:
    assert SubmissionTracker.generate_identifier("10.0.0.1", "fp-abc") == "10.0.0.1:fp-abc"
    assert SubmissionTracker.generate_identifier("10.0.0.1") == "10.0.0.1"
    assert SubmissionTracker.generate_identifier("10.0.0.1", "") == "10.0.0.1"


def test_record_then_check(tracker: SubmissionTracker, clock) -> None:
    identifier = tracker.generate_identifier("10.0.0.1", "fp-abc")
    assert tracker.check(identifier) == SubmissionStatus(has_submitted=False)

    tracker.record(identifier, "10.0.0.1", "fp-abc")
    clock.advance(5)

    status = tracker.check(identifier)
    assert status.has_submitted is True
    assert status.submitted_at == pytest.approx(clock.now - 5)
    assert status.submitted_at_iso.startswith("2023-11-14T22:13:20")


def test_fingerprint_narrows_identity(tracker: SubmissionTracker) -> None:
    tracker.record(tracker.generate_identifier("10.0.0.1", "fp-a"), "10.0.0.1", "fp-a")

    assert tracker.check(tracker.generate_identifier("10.0.0.1", "fp-b")).has_submitted is False
    assert tracker.check(tracker.generate_identifier("10.0.0.1")).has_submitted is False


def test_retention_expiry(tracker: SubmissionTracker, clock) -> None:
    tracker.record("10.0.0.1", "10.0.0.1")

    clock.advance(30 * DAY - 1)
    assert tracker.check("10.0.0.1").has_submitted is True

    clock.advance(1)
    assert tracker.check("10.0.0.1").has_submitted is False


def test_clear(tracker: SubmissionTracker) -> None:
    tracker.record("10.0.0.1", "10.0.0.1")

    tracker.clear("10.0.0.1")

    assert tracker.check("10.0.0.1").has_submitted is False


def test_primary_outage_reads_fallback(clock) -> None:
    client = MagicMock(spec=redis.Redis)
    client.get.side_effect = redis.RedisError("down")
    client.set.side_effect = redis.RedisError("down")
    store = FailoverKeyValueStore(
        RedisKeyValueStore(client, namespace="submissions"),
        LocalKeyValueStore(clock=clock),
        namespace="submissions",
    )
    tracker = SubmissionTracker(store, clock=clock)

    assert tracker.check("10.0.0.1").has_submitted is False
    tracker.record("10.0.0.1", "10.0.0.1")
    assert tracker.check("10.0.0.1").has_submitted is True


def test_unavailable_store_never_blocks() -> None:
    store = MagicMock()
    store.get.side_effect = StoreUnavailableError("down")
    store.set.side_effect = StoreUnavailableError("down")
    tracker = SubmissionTracker(store)

    assert tracker.check("10.0.0.1").has_submitted is False
    tracker.record("10.0.0.1", "10.0.0.1")


def test_invalid_retention() -> None:
    with pytest.raises(ValueError):
        SubmissionTracker(LocalKeyValueStore(), retention_seconds=0)
