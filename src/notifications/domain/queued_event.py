# src/notifications/domain/queued_event.py
"""Queued outbox event entity."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class QueuedEvent:
    """
    A row of the durable outbox queue.

    Invariants:
    - published_at set implies failed_attempts == 0, next_retry_at is None
      and last_error is None (success resets failure bookkeeping)
    - failed_attempts is never negative
    - eligible for claim iff pending and next_retry_at is unset or due

    Example:
        event = QueuedEvent(
            id=uuid4(),
            event_type="invoice.paid",
            payload='{"event_id": "...", "recipients": ["..."]}',
            created_at=datetime.now(timezone.utc),
        )
    """

    id: UUID
    event_type: str
    payload: str
    created_at: datetime
    published_at: Optional[datetime] = None
    failed_attempts: int = 0
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.failed_attempts < 0:
            raise ValueError("failed_attempts cannot be negative")

    @property
    def is_pending(self) -> bool:
        return self.published_at is None

    def is_eligible(self, now: datetime) -> bool:
        return self.is_pending and (self.next_retry_at is None or self.next_retry_at <= now)

    def published(self, published_at: datetime) -> "QueuedEvent":
        return replace(
            self,
            published_at=published_at,
            failed_attempts=0,
            next_retry_at=None,
            last_error=None,
        )

    def failed(self, failed_attempts: int, next_retry_at: datetime, last_error: str) -> "QueuedEvent":
        return replace(
            self,
            failed_attempts=failed_attempts,
            next_retry_at=next_retry_at,
            last_error=last_error,
        )
