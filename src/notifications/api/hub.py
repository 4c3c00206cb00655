# src/notifications/api/hub.py
"""
Notifications hub: the WebSocket endpoint browsers connect to.

Each authenticated connection joins the group of its user and receives
``{"method": ..., "payload": ...}`` frames pushed by the dispatch worker.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from src.notifications.domain.groups import user_group_name
from src.notifications.domain.protocols import GroupMembership
from src.shared.config import Settings
from src.shared.exceptions import AuthenticationError
from src.shared.logging import get_logger
from src.shared.security import decode_token, extract_bearer_token, resolve_recipient_id

logger = get_logger(__name__)

# First frame after joining; clients may treat it as the handshake
CONNECTED_METHOD = "connected"


def _token_from(websocket: WebSocket) -> Optional[str]:
    # Browsers cannot set headers on WebSocket upgrades, so the query string wins
    return websocket.query_params.get("access_token") or extract_bearer_token(
        websocket.headers.get("authorization")
    )


def create_hub_router(settings: Settings, registry: GroupMembership) -> APIRouter:
    router = APIRouter(tags=["notifications"])

    @router.websocket(settings.web.hub_path)
    async def notifications_hub(websocket: WebSocket):
        token = _token_from(websocket)
        try:
            if not token:
                raise AuthenticationError("Missing access token")
            recipient_id = resolve_recipient_id(decode_token(token, settings))
        except AuthenticationError as e:
            logger.info("Rejected hub connection", reason=e.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        group = user_group_name(settings.web.user_group_prefix, recipient_id)
        await websocket.accept()
        await registry.join(group, websocket)
        try:
            await websocket.send_json({"method": CONNECTED_METHOD, "payload": {"group": group}})
            # Server push only; inbound frames are read to notice the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await registry.leave(group, websocket)

    return router
