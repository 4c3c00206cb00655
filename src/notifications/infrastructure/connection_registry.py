"""
In-process registry of hub connections grouped by recipient.

Holds the live WebSocket objects of this process; a send to a group fans
out to every socket joined to it.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Set

from fastapi import WebSocket

from src.notifications.domain.protocols import GroupMembership, GroupTransport
from src.shared.logging import get_logger

logger = get_logger(__name__)


class ConnectionRegistry(GroupTransport, GroupMembership):
    def __init__(self):
        self.groups: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def join(self, group: str, websocket: WebSocket) -> None:
        async with self._lock:
            self.groups.setdefault(group, set()).add(websocket)
        logger.info("Connection joined group", group=group)

    async def leave(self, group: str, websocket: WebSocket) -> None:
        async with self._lock:
            members = self.groups.get(group)
            if members is None:
                return
            members.discard(websocket)
            if not members:
                del self.groups[group]
        logger.info("Connection left group", group=group)

    def group_size(self, group: str) -> int:
        return len(self.groups.get(group, ()))

    @property
    def connection_count(self) -> int:
        return sum(len(members) for members in self.groups.values())

    async def send_to_group(self, group: str, method: str, payload: Any) -> None:
        members = list(self.groups.get(group, ()))
        if not members:
            return

        message = json.dumps({"method": method, "payload": payload})
        stale = []
        for websocket in members:
            try:
                await websocket.send_text(message)
            except Exception as e:
                # Best effort: a broken socket must not fail delivery to the rest
                logger.warning("Dropping connection after failed send", group=group, error=str(e))
                stale.append(websocket)

        for websocket in stale:
            await self.leave(group, websocket)
