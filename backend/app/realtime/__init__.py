"""Real-time guest update channel.

Per-owner WebSocket fan-out of guest check-in events. The guest CRUD layer
calls :meth:`GuestUpdateChannel.broadcast` whenever a guest record changes;
every live connection registered under the guest's owner receives the event.

Modules:
    - schemas: tagged-union WebSocket messages
    - registry: lock-guarded owner -> connections map
    - channel: connection lifecycle and broadcast
    - router: WebSocket endpoint and HTTP broadcast trigger
"""
from .channel import GuestSession, GuestUpdateChannel, SessionState
from .registry import Connection, ConnectionRegistry, ReadyState, WebSocketConnection
from .schemas import GuestEventType

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "GuestEventType",
    "GuestSession",
    "GuestUpdateChannel",
    "ReadyState",
    "SessionState",
    "WebSocketConnection",
]
