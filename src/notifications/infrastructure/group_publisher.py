"""Real-time delivery: one group per recipient on the hub transport."""

from __future__ import annotations

import asyncio
from uuid import UUID

from src.notifications.domain.envelope import NotificationEnvelope
from src.notifications.domain.exceptions import GroupDeliveryError
from src.notifications.domain.groups import user_group_name
from src.notifications.domain.protocols import ChannelPublisher, GroupTransport
from src.notifications.domain.queued_event import QueuedEvent
from src.shared.config import WebNotificationSettings
from src.shared.logging import get_logger

logger = get_logger(__name__)


class GroupNotificationPublisher(ChannelPublisher):
    """
    Pushes envelopes to every connection of each recipient.

    Each recipient maps to the group ``user_group_prefix + recipient.hex``;
    the hub joins connections to that same group on authentication.
    Sends for one envelope run concurrently, at most ``max_batch_size``
    in flight at a time.
    """

    name = "web"

    def __init__(self, transport: GroupTransport, settings: WebNotificationSettings):
        self.transport = transport
        self.settings = settings

    @property
    def is_enabled(self) -> bool:
        return self.settings.enabled

    def group_name(self, recipient: UUID) -> str:
        return user_group_name(self.settings.user_group_prefix, recipient)

    def should_handle(self, envelope: NotificationEnvelope) -> bool:
        if not self.settings.enabled:
            return False

        if not envelope.recipients:
            logger.warning("Envelope has no recipients; skipping web delivery", event_id=str(envelope.event_id))
            return False

        if self.settings.require_channel_tag:
            return envelope.declares_channel(self.settings.channel_tag)
        return True

    async def publish(self, event: QueuedEvent, envelope: NotificationEnvelope) -> None:
        payload = envelope.to_wire()
        method = self.settings.broadcast_method
        limiter = asyncio.Semaphore(self.settings.max_batch_size)

        async def send(recipient: UUID) -> None:
            async with limiter:
                await self.transport.send_to_group(self.group_name(recipient), method, payload)

        results = await asyncio.gather(
            *(send(recipient) for recipient in envelope.recipients),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            raise GroupDeliveryError(
                f"{len(failures)} of {len(results)} group sends failed for event {event.id}: {failures[0]!r}",
                failures,
            )

        logger.debug("Sent web notification", event_id=str(event.id), recipients=len(results))
