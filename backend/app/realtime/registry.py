"""Connection registry: owner identity -> set of live connections.

The registry is the only shared mutable state touched by every WebSocket
handler, so all mutation and snapshotting happens under one asyncio lock.
Senders never iterate the live sets directly; they take a snapshot and hand
failed connections back via :meth:`ConnectionRegistry.discard_many`.

Invariant: an owner key never maps to an empty set.

Thread Safety:
    Guarded by ``asyncio.Lock``; safe for any number of tasks on one event
    loop, NOT for access from other threads.
"""
import asyncio
import logging
from enum import IntEnum
from typing import Dict, Iterable, List, Protocol, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    """Transport state, numbered like the browser WebSocket API."""
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class Connection(Protocol):
    """Capabilities the channel needs from a transport connection."""

    @property
    def ready_state(self) -> ReadyState: ...

    async def send(self, text: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class WebSocketConnection:
    """:class:`Connection` over a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def ready_state(self) -> ReadyState:
        app_state = self.websocket.application_state
        client_state = self.websocket.client_state
        if app_state == WebSocketState.CONNECTING or client_state == WebSocketState.CONNECTING:
            return ReadyState.CONNECTING
        if app_state == WebSocketState.CONNECTED and client_state == WebSocketState.CONNECTED:
            return ReadyState.OPEN
        return ReadyState.CLOSED

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self, code: int = 1000) -> None:
        if self.ready_state == ReadyState.OPEN:
            await self.websocket.close(code=code)


class ConnectionRegistry:
    """Lock-guarded map from owner identity to that owner's connections."""

    def __init__(self) -> None:
        self._connections: Dict[str, Set[Connection]] = {}
        self._lock = asyncio.Lock()

    async def add(self, owner_id: str, connection: Connection) -> None:
        async with self._lock:
            self._connections.setdefault(owner_id, set()).add(connection)
            count = len(self._connections[owner_id])
        logger.debug("Registered connection for owner %s (%d live)", owner_id, count)

    async def remove(self, owner_id: str, connection: Connection) -> bool:
        """Remove one connection; returns False if it was not registered."""
        async with self._lock:
            return self._discard_locked(owner_id, [connection]) > 0

    async def discard_many(self, owner_id: str, connections: Iterable[Connection]) -> int:
        """Remove every given connection still registered under *owner_id*."""
        async with self._lock:
            return self._discard_locked(owner_id, connections)

    async def snapshot(self, owner_id: str) -> List[Connection]:
        """Copy of the owner's live set, safe to iterate while sending."""
        async with self._lock:
            return list(self._connections.get(owner_id, ()))

    def _discard_locked(self, owner_id: str, connections: Iterable[Connection]) -> int:
        live = self._connections.get(owner_id)
        if live is None:
            return 0
        removed = 0
        for conn in connections:
            if conn in live:
                live.remove(conn)
                removed += 1
        if not live:
            del self._connections[owner_id]
            logger.debug("Owner %s has no live connections; key removed", owner_id)
        return removed

    # =========================================================================
    # Introspection
    # =========================================================================

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._connections

    def owners(self) -> List[str]:
        return list(self._connections)

    def connection_count(self, owner_id: str) -> int:
        return len(self._connections.get(owner_id, ()))

    def total_connections(self) -> int:
        return sum(len(conns) for conns in self._connections.values())

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close_all(self) -> None:
        """Close every registered connection and empty the registry."""
        async with self._lock:
            connections = [conn for conns in self._connections.values() for conn in conns]
            self._connections.clear()
        for conn in connections:
            try:
                await conn.close(code=1001)
            except Exception as e:
                logger.debug(f"Failed to close connection during shutdown: {e}")
        if connections:
            logger.info("Closed %d realtime connections on shutdown", len(connections))
