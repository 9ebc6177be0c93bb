"""Realtime router providing the guest updates WebSocket.

This module provides:
    - WebSocket /api/ws/guests: per-owner guest change notifications
    - POST /api/ws/guests/broadcast: trigger a broadcast over HTTP

Protocol Flow:
    1. Client connects (optional ``Authorization: Bearer`` header or
       ``?token=`` query parameter) -> owner resolved, "anonymous" otherwise
       -> Server sends: {type: "connected", message}
    2. Client sends: {type: "subscribe", channel: "guests"}
       -> Server sends: {type: "subscribed", channel: "guests", message}
    3. Guest CRUD changes a guest
       -> Server sends: {type: "guest_checked_in", guestId, timestamp}
    4. Client sends: {type: "unsubscribe"}
       -> Server sends: {type: "unsubscribed"}; no further broadcasts
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from app.auth.dependencies import require_identity
from app.auth.schemas import ANONYMOUS_OWNER, Identity
from app.errors import ForbiddenError

from .channel import GuestUpdateChannel
from .registry import WebSocketConnection
from .schemas import BroadcastRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

GUESTS_WS_PATH = "/api/ws/guests"


def get_guest_channel(request: Request) -> GuestUpdateChannel:
    return request.app.state.guest_channel


@router.websocket(GUESTS_WS_PATH)
async def guest_updates_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer token for clients that cannot set headers"),
) -> None:
    """WebSocket endpoint for real-time guest updates.

    Inbound frames for one connection are processed sequentially. On close
    or transport error the connection is removed from the registry.

    Args:
        websocket: The WebSocket connection.
        token: Optional bearer token when no Authorization header is sent.
    """
    channel: GuestUpdateChannel = websocket.app.state.guest_channel
    resolver = websocket.app.state.identity_resolver

    identity = resolver.resolve_optional(
        authorization=websocket.headers.get("authorization"),
        token=token,
    )
    owner_id = identity.id if identity else ANONYMOUS_OWNER

    await websocket.accept()
    session = await channel.connect(WebSocketConnection(websocket), owner_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"[WS] owner={owner_id} closed (code={message.get('code')})")
                break

            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await channel.handle_message(session, raw)
    except WebSocketDisconnect as e:
        logger.info(f"[WS] owner={owner_id} disconnected (code={e.code})")
    finally:
        await channel.disconnect(session)


@router.post(f"{GUESTS_WS_PATH}/broadcast")
async def trigger_broadcast(
    request: Request,
    body: BroadcastRequest,
    identity: Identity = Depends(require_identity),
    channel: GuestUpdateChannel = Depends(get_guest_channel),
) -> dict:
    """Broadcast a guest event for callers outside this process.

    Callers notify their own connections; elevated roles may name any
    ``ownerId``.

    Returns:
        dict: ``{"success": true, "sent": <delivered connections>}``
    """
    owner_id = body.ownerId or identity.id
    if owner_id != identity.id and not identity.is_elevated(request.app.state.config.auth.elevated_roles):
        logger.warning(f"[WS] {identity.id} tried to broadcast for owner {owner_id}")
        raise ForbiddenError()

    sent = await channel.broadcast(body.type, body.guestId, owner_id)
    return {"success": True, "sent": sent}
