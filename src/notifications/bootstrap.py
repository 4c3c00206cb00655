# src/notifications/bootstrap.py
"""Wiring of the dispatch worker and its delivery channels."""
from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.notifications.application.dispatch_worker import OutboxDispatchWorker
from src.notifications.domain.protocols import ChannelPublisher, GroupTransport
from src.notifications.infrastructure.broker_publisher import SnsBrokerPublisher, create_sns_client
from src.notifications.infrastructure.group_publisher import GroupNotificationPublisher
from src.notifications.infrastructure.outbox_store import PostgresOutboxStore
from src.shared.clock import Clock
from src.shared.config import Settings
from src.shared.logging import get_logger

logger = get_logger(__name__)


def build_publishers(
    settings: Settings,
    group_transport: Optional[GroupTransport] = None,
    sns_client: Any = None,
) -> List[ChannelPublisher]:
    publishers: List[ChannelPublisher] = []
    if not settings.has_delivery_channel:
        logger.warning("No delivery channel configured; set AWS_SNS_TOPIC_ARN or WEB_NOTIFICATIONS_ENABLED")

    if settings.broker.is_enabled:
        client = sns_client if sns_client is not None else create_sns_client(settings.broker)
        publishers.append(SnsBrokerPublisher(client, settings.broker))

    if settings.web.enabled:
        if group_transport is None:
            logger.warning("Web notifications are enabled but no group transport is available; web channel disabled")
        else:
            publishers.append(GroupNotificationPublisher(group_transport, settings.web))

    return publishers


def build_dispatch_worker(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    group_transport: Optional[GroupTransport] = None,
    sns_client: Any = None,
    clock: Optional[Clock] = None,
) -> OutboxDispatchWorker:
    return OutboxDispatchWorker(
        store=PostgresOutboxStore(session_factory),
        publishers=build_publishers(settings, group_transport, sns_client),
        settings=settings.outbox,
        clock=clock,
    )
