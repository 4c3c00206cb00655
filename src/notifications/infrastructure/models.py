# src/notifications/infrastructure/models.py
"""
Notification relay models.
Contains:
- OutboxEventModel (durable queue of notification envelopes)
Important:
- payload holds the serialized envelope verbatim; it is never rewritten
- published_at IS NULL marks a pending row; the partial index serves the claim query
"""
from uuid import UUID
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID as PGUUID

from src.notifications.domain.queued_event import QueuedEvent
from src.shared.database import Base


class OutboxEventModel(Base):
    """Outbox row awaiting relay to the delivery channels."""
    __tablename__ = 'outbox_events'

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=text('now()'))
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text('0'))
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint('failed_attempts >= 0', name='chk_outbox_events__failed_attempts'),
        Index(
            'ix_outbox_events__pending',
            'created_at',
            postgresql_where=text('published_at IS NULL'),
        ),
    )

    def to_entity(self) -> QueuedEvent:
        return QueuedEvent(
            id=self.id,
            event_type=self.event_type,
            payload=self.payload,
            created_at=self.created_at,
            published_at=self.published_at,
            failed_attempts=self.failed_attempts,
            next_retry_at=self.next_retry_at,
            last_error=self.last_error,
        )

__all__ = ['OutboxEventModel']
