from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from typing import Optional
from redis import asyncio as aioredis
import json
import logging

from app.core.database import get_redis
from app.core.exceptions import AuthenticationError
from app.core.security import decode_token
from app.modules.notifications.services import (
    NotificationHub, get_notification_hub, MARKETPLACE_ROOM, LOAN_UPDATES_ROOM
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


def _extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


async def _verify_socket_token(token: Optional[str], redis: aioredis.Redis) -> dict:
    if not token:
        raise AuthenticationError("Authentication token required")
    payload = decode_token(token)
    if payload.get("sub") is None or payload.get("type") != "access":
        raise AuthenticationError("Invalid authentication token")
    if await redis.get(f"blacklist:{token}"):
        raise AuthenticationError("Token has been revoked")
    return payload


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    redis: aioredis.Redis = Depends(get_redis),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """
    Real-time event stream.

    - Token from `?token=` or `Authorization: Bearer`, verified once at handshake
    - Joins `user-<id>`, plus `admin-channel` for admins
    - Client messages: `ping`, `subscribe:marketplace`, `subscribe:loans` (admins)
    """
    try:
        payload = await _verify_socket_token(_extract_token(websocket), redis)
    except AuthenticationError as e:
        logger.warning(f"Rejected socket handshake: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    await websocket.accept()
    connection = await hub.connect(websocket, int(payload["sub"]), payload.get("role", "user"))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await connection.send("error", {"message": "Invalid message format"})
                continue
            event = message.get("event") if isinstance(message, dict) else None

            if event == "ping":
                await connection.send("pong", {"status": "ok"})
            elif event == "subscribe:marketplace":
                hub.join(connection, MARKETPLACE_ROOM)
                await connection.send("subscribed", {"channel": MARKETPLACE_ROOM})
            elif event == "subscribe:loans":
                if connection.is_admin:
                    hub.join(connection, LOAN_UPDATES_ROOM)
                    await connection.send("subscribed", {"channel": LOAN_UPDATES_ROOM})
                else:
                    await connection.send("error", {"message": "Admin access required"})
            else:
                await connection.send("error", {"message": f"Unknown event: {event}"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
