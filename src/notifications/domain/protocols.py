"""
Ports of the notification relay.
Abstracts queue storage and delivery channels without coupling to infrastructure.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from .envelope import NotificationEnvelope
from .queued_event import QueuedEvent


class ClaimedBatch(ABC):
    """Events claimed by one open store transaction."""

    events: Sequence[QueuedEvent]

    @abstractmethod
    async def mark_published(self, event_id: UUID, published_at: datetime) -> None:
        """Record terminal success and reset failure bookkeeping."""
        pass

    @abstractmethod
    async def mark_failed(
        self,
        event_id: UUID,
        failed_attempts: int,
        next_retry_at: datetime,
        last_error: str,
    ) -> None:
        """Record a failed attempt; the event stays pending."""
        pass


class OutboxStore(ABC):
    """Durable queue of pending notification events."""

    @abstractmethod
    def claim_batch(self, max_size: int) -> AbstractAsyncContextManager[ClaimedBatch]:
        """
        Claim up to ``max_size`` eligible events ordered by creation time.

        The claim is held until the context exits: a clean exit commits every
        update made through the batch, an exception rolls everything back.
        """
        pass


class ChannelPublisher(ABC):
    """A delivery channel the dispatch worker fans envelopes out to."""

    name: str

    @property
    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether the channel is configured at all."""
        pass

    @abstractmethod
    def should_handle(self, envelope: NotificationEnvelope) -> bool:
        """Whether this envelope is addressed to the channel."""
        pass

    @abstractmethod
    async def publish(self, event: QueuedEvent, envelope: NotificationEnvelope) -> None:
        """Deliver one event; raise on any failure."""
        pass


class GroupTransport(ABC):
    """Group-addressed real-time message fabric."""

    @abstractmethod
    async def send_to_group(self, group: str, method: str, payload: Any) -> None:
        """Send a named message to every connection in ``group``."""
        pass


class GroupMembership(ABC):
    """Connection side of the group fabric: hub connections join and leave groups."""

    @abstractmethod
    async def join(self, group: str, connection: Any) -> None:
        pass

    @abstractmethod
    async def leave(self, group: str, connection: Any) -> None:
        pass
