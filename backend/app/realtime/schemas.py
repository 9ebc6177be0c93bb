"""Pydantic schemas for the guest updates WebSocket protocol.

Inbound and outbound frames are JSON objects discriminated by ``type``.

Inbound:
    {"type": "subscribe", "channel": "guests"}
    {"type": "unsubscribe"}

Outbound:
    {"type": "connected", "message": "..."}
    {"type": "subscribed", "channel": "guests", "message": "..."}
    {"type": "unsubscribed"}
    {"type": "error", "message": "..."}
    {"type": "guest_updated" | "guest_checked_in" | "guest_checkin_cleared",
     "guestId": "...", "timestamp": "2026-01-01T00:00:00.000Z"}
"""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.errors import ProtocolError

GUESTS_CHANNEL = "guests"


class GuestEventType(str, Enum):
    """Kinds of guest change pushed to subscribers.

    Attributes:
        GUEST_UPDATED: Any edit to a guest record.
        GUEST_CHECKED_IN: Guest was checked in at the venue.
        GUEST_CHECKIN_CLEARED: A previous check-in was undone.
    """
    GUEST_UPDATED = "guest_updated"
    GUEST_CHECKED_IN = "guest_checked_in"
    GUEST_CHECKIN_CLEARED = "guest_checkin_cleared"


# =============================================================================
# Inbound
# =============================================================================


class SubscribeMessage(BaseModel):
    type: Literal["subscribe"]
    channel: Optional[str] = None


class UnsubscribeMessage(BaseModel):
    type: Literal["unsubscribe"]


InboundMessage = Annotated[
    Union[SubscribeMessage, UnsubscribeMessage],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundMessage)


def parse_inbound(raw: str) -> Union[SubscribeMessage, UnsubscribeMessage]:
    """Decode one inbound frame.

    Raises:
        ProtocolError: "Invalid message format" for non-JSON input,
            "Unknown message type" for JSON that is not a known message.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise ProtocolError("Invalid message format")

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError:
        raise ProtocolError("Unknown message type")


# =============================================================================
# Outbound
# =============================================================================


class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = "Real-time guest updates connected"


class SubscribedMessage(BaseModel):
    type: Literal["subscribed"] = "subscribed"
    channel: str = GUESTS_CHANNEL
    message: str = "Successfully subscribed to guest updates"


class UnsubscribedMessage(BaseModel):
    type: Literal["unsubscribed"] = "unsubscribed"


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class GuestEventMessage(BaseModel):
    """Broadcast frame describing one guest change."""
    type: GuestEventType
    guestId: str
    timestamp: str = Field(default_factory=utc_timestamp)


class BroadcastRequest(BaseModel):
    """Body of ``POST /api/ws/guests/broadcast``."""
    type: GuestEventType = Field(..., description="Guest event kind")
    guestId: str = Field(..., min_length=1, description="Guest that changed")
    ownerId: Optional[str] = Field(
        default=None,
        description="Owner to notify; defaults to the caller",
    )
