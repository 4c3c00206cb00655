from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from src.notifications.domain.queued_event import QueuedEvent
from src.notifications.domain.retry_policy import RetryPolicy


@pytest.mark.parametrize(
    "attempts, expected",
    [(0, 5), (1, 5), (2, 10), (3, 20), (5, 80), (6, 160), (7, 300), (10, 300), (10_000, 300)],
)
def test_delay_is_capped_exponential(attempts, expected):
    assert RetryPolicy().delay_seconds(attempts) == expected


def test_zero_base_never_waits():
    policy = RetryPolicy(base_retry_seconds=0, max_backoff_seconds=0)
    assert policy.delay_seconds(50) == 0


def test_next_retry_at_adds_delay():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert RetryPolicy().next_retry_at(now, 1) == now + timedelta(seconds=5)


def test_exhaustion_threshold():
    policy = RetryPolicy(max_retry_attempts=3)
    assert not policy.is_exhausted(2)
    assert policy.is_exhausted(3)
    assert policy.is_exhausted(4)


def test_queued_event_eligibility():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    event = QueuedEvent(id=uuid4(), event_type="t", payload="{}", created_at=now)

    assert event.is_eligible(now)
    assert not event.failed(1, now + timedelta(seconds=5), "boom").is_eligible(now)
    assert event.failed(1, now, "boom").is_eligible(now)
    assert not event.published(now).is_eligible(now)


def test_published_resets_failure_bookkeeping():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    event = QueuedEvent(id=uuid4(), event_type="t", payload="{}", created_at=now).failed(3, now, "boom")

    published = event.published(now)
    assert published.published_at == now
    assert published.failed_attempts == 0
    assert published.next_retry_at is None
    assert published.last_error is None


def test_negative_attempts_rejected():
    with pytest.raises(ValueError):
        QueuedEvent(id=uuid4(), event_type="t", payload="{}", created_at=datetime.now(timezone.utc), failed_attempts=-1)
