"""
Redis pub/sub fabric for hub groups.

Dispatch workers publish group messages to Redis; every API process runs a
``RedisGroupRelay`` that forwards them to its own ``ConnectionRegistry``.
This lets workers deliver to sockets held by other processes.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis.asyncio import Redis

from src.notifications.domain.exceptions import DeliveryError
from src.notifications.domain.protocols import GroupTransport
from src.notifications.infrastructure.connection_registry import ConnectionRegistry
from src.shared.logging import get_logger

logger = get_logger(__name__)


class RedisGroupTransport(GroupTransport):
    def __init__(self, redis: Redis, channel_prefix: str):
        self.redis = redis
        self.channel_prefix = channel_prefix

    def channel_for(self, group: str) -> str:
        return f"{self.channel_prefix}{group}"

    async def send_to_group(self, group: str, method: str, payload: Any) -> None:
        message = json.dumps({"method": method, "payload": payload})
        try:
            await self.redis.publish(self.channel_for(group), message)
        except Exception as e:
            raise DeliveryError(f"Redis publish to group {group} failed: {e}") from e


class RedisGroupRelay:
    """Pattern-subscribes to every group channel and feeds the local registry."""

    def __init__(
        self,
        redis: Redis,
        registry: ConnectionRegistry,
        channel_prefix: str,
        reconnect_delay: float = 1.0,
    ):
        self.redis = redis
        self.registry = registry
        self.channel_prefix = channel_prefix
        self.reconnect_delay = reconnect_delay
        self._task: Optional[asyncio.Task] = None

    async def handle_message(self, message: dict) -> None:
        if message.get("type") != "pmessage":
            return

        channel = message.get("channel") or ""
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        if not channel.startswith(self.channel_prefix):
            return
        group = channel[len(self.channel_prefix):]

        try:
            body = json.loads(message.get("data") or "")
            method = body["method"]
            payload = body["payload"]
        except (ValueError, TypeError, KeyError):
            logger.warning("Ignoring malformed group message", channel=channel)
            return

        await self.registry.send_to_group(group, method, payload)

    async def run(self) -> None:
        """Relay until cancelled; a lost subscription is re-established after ``reconnect_delay``."""
        pattern = f"{self.channel_prefix}*"
        while True:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.psubscribe(pattern)
                logger.info("Group relay subscribed", pattern=pattern)
                async for message in pubsub.listen():
                    try:
                        await self.handle_message(message)
                    except Exception:
                        logger.exception("Group relay failed to forward message")
                logger.warning("Group relay subscription ended", pattern=pattern)
            except Exception:
                logger.exception("Group relay lost its subscription", retry_in=self.reconnect_delay)
            finally:
                await self._close(pubsub)
            await asyncio.sleep(self.reconnect_delay)

    async def _close(self, pubsub) -> None:
        try:
            await pubsub.aclose()
        except Exception as e:
            logger.warning("Failed to close group relay subscription", error=str(e))

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="group_relay")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Group relay exited with an error")
        finally:
            self._task = None
