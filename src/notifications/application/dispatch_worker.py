# src/notifications/application/dispatch_worker.py
"""
Outbox dispatch loop.

Claims batches of eligible outbox events, fans each one out to the enabled
delivery channels, and records success or a scheduled retry, all inside the
transaction that holds the claim.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from src.notifications.domain.envelope import decode_envelope
from src.notifications.domain.protocols import ChannelPublisher, ClaimedBatch, OutboxStore
from src.notifications.domain.queued_event import QueuedEvent
from src.notifications.domain.retry_policy import RetryPolicy
from src.shared.clock import Clock, SystemClock
from src.shared.config import OutboxWorkerSettings
from src.shared.logging import bind_event_context, clear_event_context, get_logger, time_block

logger = get_logger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    CLAIMING = "claiming"
    PROCESSING = "processing"
    COMMITTING = "committing"
    STOPPED = "stopped"


class OutboxDispatchWorker:
    """
    Long-running relay from the outbox table to the delivery channels.

    Any number of instances may poll the same store; skip-locked claims keep
    their batches disjoint. ``stop()`` lets the current batch commit and
    prevents a new one from being claimed.
    """

    worker_name = "outbox_dispatch"

    def __init__(
        self,
        store: OutboxStore,
        publishers: Sequence[ChannelPublisher],
        settings: OutboxWorkerSettings,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.publishers = list(publishers)
        self.settings = settings
        self.retry_policy = RetryPolicy(
            base_retry_seconds=settings.base_retry_seconds,
            max_backoff_seconds=settings.max_backoff_seconds,
            max_retry_attempts=settings.max_retry_attempts,
        )
        self.clock = clock or SystemClock()

        self.state = WorkerState.IDLE
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # Counters for /workers/health
        self.published_count = 0
        self.failed_count = 0
        self.last_batch_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def enabled_publishers(self) -> list[ChannelPublisher]:
        return [publisher for publisher in self.publishers if publisher.is_enabled]

    def stop(self) -> None:
        """Request a graceful stop; wakes a sleeping loop immediately."""
        self.shutdown_event.set()

    async def run(self) -> None:
        self.is_running = True
        self.state = WorkerState.IDLE
        logger.info(
            "Outbox dispatch worker started",
            batch_size=self.settings.batch_size,
            poll_interval_ms=self.settings.poll_interval_ms,
            channels=[publisher.name for publisher in self.enabled_publishers],
        )
        try:
            while not self.shutdown_event.is_set():
                try:
                    if not self.enabled_publishers:
                        logger.warning("No delivery channel configured; outbox worker will pause")
                        await self._sleep()
                        continue

                    processed = await self.process_batch()
                    if processed == 0:
                        await self._sleep()
                except Exception as e:
                    self.state = WorkerState.IDLE
                    self.last_error = str(e)
                    logger.exception("Unexpected error while processing outbox batch")
                    await self._sleep()
        finally:
            self.state = WorkerState.STOPPED
            self.is_running = False
            logger.info("Outbox dispatch worker stopped")

    async def process_batch(self) -> int:
        """
        Claim and process one batch.

        Returns:
            Number of claimed events (0 when the queue had nothing eligible).
        """
        self.state = WorkerState.CLAIMING
        async with self.store.claim_batch(self.settings.batch_size) as batch:
            if not batch.events:
                self.state = WorkerState.COMMITTING
                count = 0
            else:
                self.state = WorkerState.PROCESSING
                with time_block("outbox.batch", logger=logger, labels={"size": str(len(batch.events))}):
                    for event in batch.events:
                        if self.shutdown_event.is_set():
                            # Untouched events stay eligible for the next claim
                            logger.info("Stop requested mid-batch; leaving remaining events for later")
                            break
                        await self._process_event(batch, event)
                self.state = WorkerState.COMMITTING
                count = len(batch.events)
        self.state = WorkerState.IDLE
        self.last_batch_at = self.clock.utcnow()
        return count

    async def _process_event(self, batch: ClaimedBatch, event: QueuedEvent) -> None:
        bind_event_context(event_id=str(event.id), event_type=event.event_type)
        try:
            try:
                envelope = decode_envelope(event.payload)
                if envelope.correlation_id:
                    bind_event_context(correlation_id=envelope.correlation_id)

                for publisher in self.enabled_publishers:
                    if publisher.should_handle(envelope):
                        await publisher.publish(event, envelope)
            except Exception as e:
                logger.error("Failed to publish outbox event", exc_info=True)
                await self._mark_failure(batch, event, e)
                return

            await batch.mark_published(event.id, self.clock.utcnow())
            self.published_count += 1
            logger.debug("Published outbox event")
        finally:
            clear_event_context()

    async def _mark_failure(self, batch: ClaimedBatch, event: QueuedEvent, error: Exception) -> None:
        attempts = event.failed_attempts + 1
        next_retry_at = self.retry_policy.next_retry_at(self.clock.utcnow(), attempts)
        last_error = str(error) or error.__class__.__name__

        await batch.mark_failed(event.id, attempts, next_retry_at, last_error)
        self.failed_count += 1
        self.last_error = last_error

        if self.retry_policy.is_exhausted(attempts):
            logger.warning(
                "Outbox event reached max retry attempts",
                attempts=attempts,
                max_retry_attempts=self.retry_policy.max_retry_attempts,
            )
        else:
            logger.info("Scheduled outbox retry", attempts=attempts, next_retry_at=next_retry_at.isoformat())

    async def _sleep(self) -> None:
        """Wait one poll interval, waking early on stop."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.settings.poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "status": "running" if self.is_running else "stopped",
            "state": self.state.value,
            "channels": [publisher.name for publisher in self.enabled_publishers],
            "published": self.published_count,
            "failed": self.failed_count,
            "last_batch_at": self.last_batch_at.isoformat() if self.last_batch_at else None,
            "last_error": self.last_error,
        }
