# src/notifications/domain/envelope.py
"""
Notification envelope: the normalized payload shape shared by every delivery channel.

Producers serialize it (snake_case JSON) into ``outbox_events.payload``; the
dispatch worker decodes it back before fan-out.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import EnvelopeDecodeError, MissingRecipientsError


class NotificationEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    # Identity; omitted values decode as nil/empty rather than failing delivery
    event_id: UUID = UUID(int=0)
    event_type: str = ""
    org_id: Optional[UUID] = None
    # Addressing
    recipients: list[UUID] = Field(default_factory=list)
    channels: Optional[list[str]] = None
    # Content
    title: str = ""
    body: str = ""
    icon: Optional[str] = None
    severity: Optional[str] = None
    deep_link: Optional[str] = None
    extras: Optional[dict[str, Any]] = None
    # Tracing
    created_at: Optional[datetime] = None
    correlation_id: Optional[str] = None

    @field_validator("event_type", "title", "body", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("recipients")
    @classmethod
    def _dedupe_recipients(cls, value: list[UUID]) -> list[UUID]:
        # Set semantics; first-seen order kept for per-recipient iteration
        return list(dict.fromkeys(value))

    def declares_channel(self, tag: str) -> bool:
        """Case-insensitive exact match against the declared channel tags."""
        wanted = tag.casefold()
        return any(channel.casefold() == wanted for channel in self.channels or ())

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict of the envelope, as sent to real-time listeners."""
        return self.model_dump(mode="json")


def decode_envelope(payload: str | bytes) -> NotificationEnvelope:
    """
    Decode a serialized envelope and check it is deliverable.

    Raises:
        EnvelopeDecodeError: payload is not a valid envelope document
        MissingRecipientsError: envelope has an empty recipient set
    """
    try:
        envelope = NotificationEnvelope.model_validate_json(payload)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"Payload is not a valid notification envelope: {e.error_count()} error(s)") from e

    if not envelope.recipients:
        raise MissingRecipientsError(f"Envelope {envelope.event_id} has no recipients")
    return envelope
