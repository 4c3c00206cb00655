# src/notifications/domain/retry_policy.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff for failed outbox deliveries."""

    base_retry_seconds: int = 5
    max_backoff_seconds: int = 300
    max_retry_attempts: int = 10

    def delay_seconds(self, attempts: int) -> int:
        if attempts <= 0:
            return self.base_retry_seconds
        # Compare before multiplying so huge attempt counts stay cheap
        if self.base_retry_seconds > 0 and attempts - 1 >= self.max_backoff_seconds.bit_length():
            return self.max_backoff_seconds
        return min(self.max_backoff_seconds, self.base_retry_seconds * 2 ** (attempts - 1))

    def next_retry_at(self, now: datetime, attempts: int) -> datetime:
        return now + timedelta(seconds=self.delay_seconds(attempts))

    def is_exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_retry_attempts
