"""Guest update channel: connection lifecycle and per-owner broadcast.

Session state machine::

    CONNECTING --connect()--> OPEN --unsubscribe--> UNSUBSCRIBED
         any state --disconnect()--> CLOSED (terminal)

Registry membership is what makes a connection eligible for broadcasts.
``subscribe`` only acknowledges; it does not (re-)register, so a session
that sent ``unsubscribe`` stays silent until the client reconnects.

Delivery is best-effort and non-durable: a restart drops every subscription
and clients are expected to reconnect.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel

from app.auth.schemas import ANONYMOUS_OWNER
from app.errors import ProtocolError

from .registry import Connection, ConnectionRegistry, ReadyState
from .schemas import (
    GUESTS_CHANNEL,
    ConnectedMessage,
    ErrorMessage,
    GuestEventMessage,
    GuestEventType,
    SubscribedMessage,
    SubscribeMessage,
    UnsubscribedMessage,
    UnsubscribeMessage,
    parse_inbound,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    UNSUBSCRIBED = "unsubscribed"
    CLOSED = "closed"


@dataclass(eq=False)
class GuestSession:
    """One WebSocket client of the guest updates channel."""
    connection: Connection
    owner_id: str
    state: SessionState = SessionState.CONNECTING


class GuestUpdateChannel:
    """Runs the subscribe/unsubscribe protocol and fans out guest events.

    Args:
        registry: Shared owner -> connections map.
        send_timeout: Seconds a single broadcast send may take before the
            connection is treated as dead.
    """

    def __init__(self, registry: ConnectionRegistry, send_timeout: float = 5.0) -> None:
        self.registry = registry
        self._send_timeout = send_timeout

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, connection: Connection, owner_id: Optional[str]) -> GuestSession:
        """Register an accepted connection and greet it."""
        session = GuestSession(connection=connection, owner_id=owner_id or ANONYMOUS_OWNER)
        await self.registry.add(session.owner_id, connection)
        session.state = SessionState.OPEN
        logger.info(
            f"[WS] Guest updates connected for owner={session.owner_id} "
            f"({self.registry.connection_count(session.owner_id)} live)"
        )
        try:
            await self._reply(session, ConnectedMessage())
        except Exception as e:
            # The receive loop observes the dead transport and disconnects.
            logger.debug(f"[WS] Failed to send 'connected' to owner={session.owner_id}: {e}")
        return session

    async def handle_message(self, session: GuestSession, raw: str) -> None:
        """Process one inbound frame for *session*.

        Protocol errors are answered with an error frame; the connection
        stays open and its state is unchanged.
        """
        if session.state == SessionState.CLOSED:
            return

        try:
            message = parse_inbound(raw)
        except ProtocolError as e:
            await self._reply(session, ErrorMessage(message=e.message))
            return

        if isinstance(message, UnsubscribeMessage):
            await self.registry.remove(session.owner_id, session.connection)
            session.state = SessionState.UNSUBSCRIBED
            logger.info(f"[WS] owner={session.owner_id} unsubscribed")
            await self._reply(session, UnsubscribedMessage())
        elif isinstance(message, SubscribeMessage) and message.channel == GUESTS_CHANNEL:
            await self._reply(session, SubscribedMessage())
        else:
            await self._reply(session, ErrorMessage(message="Unknown message type"))

    async def disconnect(self, session: GuestSession) -> None:
        """Drop *session* from the registry. Safe to call more than once."""
        if session.state == SessionState.CLOSED:
            return
        removed = await self.registry.remove(session.owner_id, session.connection)
        session.state = SessionState.CLOSED
        logger.info(
            f"[WS] Guest updates disconnected for owner={session.owner_id} "
            f"(was registered: {removed})"
        )

    async def _reply(self, session: GuestSession, message: BaseModel) -> None:
        await session.connection.send(message.model_dump_json())

    # =========================================================================
    # Broadcast
    # =========================================================================

    async def broadcast(
        self,
        event_type: Union[GuestEventType, str],
        guest_id: str,
        owner_id: Optional[str] = None,
    ) -> int:
        """Push a guest event to every live connection of *owner_id*.

        Connections that are not open, or whose send fails, are removed from
        the registry. Sends run concurrently over a snapshot of the owner's
        set.

        Args:
            event_type: One of the :class:`GuestEventType` values.
            guest_id: Guest that changed.
            owner_id: Owner whose connections are notified (default
                "anonymous").

        Returns:
            Number of connections the event was delivered to.

        Raises:
            ValueError: If *event_type* is not a known guest event.
        """
        owner = owner_id or ANONYMOUS_OWNER
        event = GuestEventMessage(type=GuestEventType(event_type), guestId=guest_id)

        connections = await self.registry.snapshot(owner)
        if not connections:
            return 0

        payload = event.model_dump_json()
        results = await asyncio.gather(
            *[self._deliver(conn, payload) for conn in connections]
        )

        dead: List[Connection] = [
            conn for conn, delivered in zip(connections, results) if not delivered
        ]
        if dead:
            await self.registry.discard_many(owner, dead)

        sent = sum(1 for delivered in results if delivered)
        logger.info(
            "[WS] broadcast %s guest=%s owner=%s sent=%d",
            event.type.value, guest_id, owner, sent,
        )
        return sent

    async def _deliver(self, connection: Connection, payload: str) -> bool:
        """Send *payload*; False means the connection must be dropped."""
        if connection.ready_state != ReadyState.OPEN:
            return False
        try:
            await asyncio.wait_for(connection.send(payload), timeout=self._send_timeout)
            return True
        except Exception as e:
            logger.debug(f"[WS] Failed to send to connection: {e}")
            return False
