"""Postgres outbox store with skip-locked claiming."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Sequence
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.notifications.domain.envelope import NotificationEnvelope
from src.notifications.domain.protocols import ClaimedBatch, OutboxStore
from src.notifications.domain.queued_event import QueuedEvent
from src.notifications.infrastructure.models import OutboxEventModel
from src.shared.logging import get_logger

logger = get_logger(__name__)


class SqlAlchemyClaimedBatch(ClaimedBatch):
    """Updates issued through the session that holds the row locks."""

    def __init__(self, session: AsyncSession, events: Sequence[QueuedEvent]):
        self.session = session
        self.events = events

    async def mark_published(self, event_id: UUID, published_at: datetime) -> None:
        await self.session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id)
            .values(
                published_at=published_at,
                failed_attempts=0,
                next_retry_at=None,
                last_error=None,
            )
        )

    async def mark_failed(
        self,
        event_id: UUID,
        failed_attempts: int,
        next_retry_at: datetime,
        last_error: str,
    ) -> None:
        await self.session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id)
            .values(
                failed_attempts=failed_attempts,
                next_retry_at=next_retry_at,
                last_error=last_error,
            )
        )


class PostgresOutboxStore(OutboxStore):
    """
    Claims eligible outbox rows with ``FOR UPDATE SKIP LOCKED``.

    Rows locked by another worker's open claim are skipped rather than
    waited on, so any number of workers can poll the same table.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _claim_statement(max_size: int):
        return (
            select(OutboxEventModel)
            .where(
                OutboxEventModel.published_at.is_(None),
                or_(
                    OutboxEventModel.next_retry_at.is_(None),
                    OutboxEventModel.next_retry_at <= func.now(),
                ),
            )
            .order_by(OutboxEventModel.created_at)
            .limit(max_size)
            .with_for_update(skip_locked=True)
        )

    @asynccontextmanager
    async def claim_batch(self, max_size: int) -> AsyncIterator[ClaimedBatch]:
        async with self.session_factory() as session:
            # begin() commits on clean exit and rolls back on any exception
            async with session.begin():
                result = await session.execute(self._claim_statement(max_size))
                events = [row.to_entity() for row in result.scalars().all()]
                if events:
                    logger.debug("Claimed outbox batch", size=len(events))
                yield SqlAlchemyClaimedBatch(session, events)


async def enqueue_notification(session: AsyncSession, envelope: NotificationEnvelope) -> UUID:
    """
    Add a notification envelope to the outbox.

    Call inside the producer's business transaction so the event is
    persisted atomically with the change that caused it. The envelope's
    event id doubles as the outbox row id.
    """
    session.add(
        OutboxEventModel(
            id=envelope.event_id,
            event_type=envelope.event_type,
            payload=envelope.model_dump_json(exclude_none=True),
        )
    )
    await session.flush()

    logger.debug(
        "Added notification to outbox",
        event_id=str(envelope.event_id),
        event_type=envelope.event_type,
        recipients=len(envelope.recipients),
    )
    return envelope.event_id
