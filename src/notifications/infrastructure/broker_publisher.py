"""AWS SNS adapter for push-notification fan-out."""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, Iterator, Optional

import boto3
from botocore.exceptions import ClientError

from src.notifications.domain.envelope import NotificationEnvelope
from src.notifications.domain.exceptions import EnvelopeDecodeError
from src.notifications.domain.protocols import ChannelPublisher
from src.notifications.domain.queued_event import QueuedEvent
from src.shared.config import BrokerSettings
from src.shared.logging import get_logger

logger = get_logger(__name__)


def build_message_attributes(envelope: NotificationEnvelope) -> Dict[str, Dict[str, str]]:
    """SNS message attributes used by subscription filter policies."""
    attributes = {
        "event_type": {"DataType": "String", "StringValue": envelope.event_type},
    }
    if envelope.correlation_id and envelope.correlation_id.strip():
        attributes["correlation_id"] = {"DataType": "String", "StringValue": envelope.correlation_id}
    return attributes


class SnsBrokerPublisher(ChannelPublisher):
    """
    Publishes outbox events to an SNS topic.

    Standard topics get the payload unchanged in a single publish. FIFO
    topics get one message per recipient, grouped by recipient so the
    broker keeps each user's notifications in order, and deduplicated per
    (event, recipient) so a redelivered batch does not fan out twice.
    """

    name = "sns"

    def __init__(self, sns_client: Any, settings: BrokerSettings):
        # boto3 SNS client; its calls block, so they run in a worker thread
        self.client = sns_client
        self.settings = settings

    @property
    def is_enabled(self) -> bool:
        return self.settings.is_enabled

    def should_handle(self, envelope: NotificationEnvelope) -> bool:
        return self.is_enabled

    async def publish(self, event: QueuedEvent, envelope: NotificationEnvelope) -> None:
        if not self.is_enabled:
            logger.debug("Skipping SNS publish; topic ARN is not configured", event_id=str(event.id))
            return

        attributes = build_message_attributes(envelope)
        if self.settings.fifo:
            for request in self.build_fifo_requests(event, envelope, attributes):
                await self._publish(request)
            return

        await self._publish(
            {
                "TopicArn": self.settings.topic_arn,
                "Message": event.payload,
                "MessageAttributes": attributes,
            }
        )

    def build_fifo_requests(
        self,
        event: QueuedEvent,
        envelope: NotificationEnvelope,
        attributes: Dict[str, Dict[str, str]],
    ) -> Iterator[Dict[str, Any]]:
        """One publish request per recipient, each carrying only that recipient."""
        # Generic document, so fields unknown to the envelope model survive the copy
        try:
            document = json.loads(event.payload)
        except json.JSONDecodeError as e:
            raise EnvelopeDecodeError(f"Unable to parse payload for outbox event {event.id}") from e
        if not isinstance(document, dict):
            raise EnvelopeDecodeError(f"Payload for outbox event {event.id} is not a JSON object")

        for recipient in envelope.recipients:
            clone = copy.deepcopy(document)
            clone["recipients"] = [str(recipient)]
            yield {
                "TopicArn": self.settings.topic_arn,
                "Message": json.dumps(clone, separators=(",", ":")),
                "MessageAttributes": attributes,
                "MessageGroupId": f"user-{recipient}",
                "MessageDeduplicationId": f"{event.id.hex}-{recipient.hex}",
            }

    async def _publish(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.publish, **request)

    async def delete_endpoint(self, endpoint_arn: str) -> bool:
        """
        Delete a platform endpoint that no longer maps to a live device.

        Returns:
            True if deleted, False if SNS no longer knew the endpoint.
        """
        try:
            await asyncio.to_thread(self.client.delete_endpoint, EndpointArn=endpoint_arn)
        except ClientError as e:
            if _error_code(e) == "NotFound":
                logger.warning("SNS endpoint was not found during delete", endpoint_arn=endpoint_arn)
                return False
            raise
        logger.info("Deleted SNS endpoint", endpoint_arn=endpoint_arn)
        return True


def _error_code(error: ClientError) -> Optional[str]:
    return error.response.get("Error", {}).get("Code")


def create_sns_client(settings: BrokerSettings) -> Any:
    return boto3.client("sns", region_name=settings.region)


__all__ = ["SnsBrokerPublisher", "build_message_attributes", "create_sns_client"]
