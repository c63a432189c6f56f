"""Realtime gateway — subscription state and channel fan-out.

Learn: The gateway owns two mirrored maps:

    connection id → set of channel ids   (what a connection listens to)
    channel id    → set of connection ids (who receives a channel's events)

Every mutation of either map happens under one asyncio.Lock, so joins,
leaves, and disconnects that interleave for the same channel can't lose
updates. Broadcasts take the lock only long enough to snapshot the
target set, then enqueue onto each connection's outbox without awaiting
the socket. A slow client only backs up its own queue.

Lifecycle of a connection:

    CONNECTING → AUTHENTICATED → SUBSCRIBED(channels) → CLOSED

The WebSocket route handles CONNECTING (token check) and hands the
connection over once authenticated; disconnect() releases everything.
"""

import asyncio
import enum
import json
import uuid
from typing import Any, Optional

import structlog
from fastapi.websockets import WebSocketDisconnect

from crewchat.auth.jwt import Identity
from crewchat.realtime.events import (
    DELETED_MESSAGE,
    ERROR,
    JOIN_CHANNEL,
    JOINED_CHANNEL,
    LEAVE_CHANNEL,
    LEFT_CHANNEL,
    NEW_MESSAGE,
    PING,
    PONG,
)

logger = structlog.get_logger()


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


class FrameError(Exception):
    """A client frame the gateway can't act on."""


class UnknownConnectionError(LookupError):
    """The connection is not (or no longer) registered."""


class Connection:
    """One authenticated WebSocket client and its outbound queue.

    Learn: push() never blocks — frames go onto an unbounded queue and
    run_sender() (one task per connection) writes them to the socket in
    order. When the socket fails, the sender stops and later pushes are
    dropped; nothing is retried or persisted for that client.
    """

    def __init__(self, websocket: Any, identity: Identity, connection_id: Optional[str] = None):
        self.id = connection_id or uuid.uuid4().hex
        self.identity = identity
        self._websocket = websocket
        self._outbox: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: str, data: dict[str, Any]) -> bool:
        """Queue an event for delivery. Returns False once closed."""
        if self._closed:
            return False
        self._outbox.put_nowait({"event": event, "data": data})
        return True

    def close(self) -> None:
        """Stop accepting events; the sender exits after draining."""
        if not self._closed:
            self._closed = True
            self._outbox.put_nowait(None)

    async def run_sender(self) -> None:
        """Drain the outbox into the socket until closed or the socket fails."""
        while True:
            frame = await self._outbox.get()
            if frame is None:
                return
            try:
                await self._websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(
                    "gateway.send_failed",
                    connection_id=self.id,
                    event_name=frame["event"],
                    error=str(e),
                )
                self._closed = True
                return


class RealtimeGateway:
    """In-process registry of live connections and their channel subscriptions.

    Created once by the application factory and closed at shutdown.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._connections: dict[str, Connection] = {}
        self._subscriptions: dict[str, set[str]] = {}
        self._subscribers: dict[str, set[str]] = {}
        self._closed = False

    # ─── Connection lifecycle ───────────────────────────

    async def connect(self, connection: Connection) -> None:
        """Register an authenticated connection with no subscriptions."""
        async with self._lock:
            if self._closed:
                raise RuntimeError("Gateway is closed")
            self._connections[connection.id] = connection
            self._subscriptions[connection.id] = set()
        logger.info(
            "gateway.connected",
            connection_id=connection.id,
            user_id=str(connection.identity.user_id),
        )

    async def disconnect(self, connection_id: str) -> set[str]:
        """Release every subscription of a connection and forget it.

        Safe to call more than once. Returns the channels released.
        """
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            channels = self._subscriptions.pop(connection_id, set())
            for channel_id in channels:
                self._discard_subscriber(channel_id, connection_id)
        if connection is not None:
            connection.close()
            logger.info(
                "gateway.disconnected",
                connection_id=connection_id,
                released_channels=len(channels),
            )
        return channels

    def _discard_subscriber(self, channel_id: str, connection_id: str) -> None:
        subscribers = self._subscribers.get(channel_id)
        if subscribers is None:
            return
        subscribers.discard(connection_id)
        if not subscribers:
            del self._subscribers[channel_id]

    # ─── Subscriptions ──────────────────────────────────

    async def join_channel(self, connection_id: str, channel_id: str) -> None:
        """Subscribe a connection to a channel (idempotent) and acknowledge it.

        Learn: Subscriptions are client-declared. The gateway does not
        check persisted membership here; posting and reading history are
        where membership is enforced.
        """
        channel_id = str(channel_id)
        async with self._lock:
            connection = self._require(connection_id)
            self._subscriptions[connection_id].add(channel_id)
            self._subscribers.setdefault(channel_id, set()).add(connection_id)
        connection.push(JOINED_CHANNEL, {"channelId": channel_id})
        logger.info(
            "gateway.joined_channel",
            connection_id=connection_id,
            channel_id=channel_id,
        )

    async def leave_channel(self, connection_id: str, channel_id: str) -> None:
        """Unsubscribe a connection. Leaving an unsubscribed channel is a no-op."""
        channel_id = str(channel_id)
        async with self._lock:
            connection = self._require(connection_id)
            self._subscriptions[connection_id].discard(channel_id)
            self._discard_subscriber(channel_id, connection_id)
        connection.push(LEFT_CHANNEL, {"channelId": channel_id})
        logger.info(
            "gateway.left_channel",
            connection_id=connection_id,
            channel_id=channel_id,
        )

    def _require(self, connection_id: str) -> Connection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise UnknownConnectionError(f"Unknown connection: {connection_id}")
        return connection

    # ─── Broadcasts ─────────────────────────────────────

    async def broadcast_message_created(self, channel_id: Any, message: dict[str, Any]) -> int:
        """Push a `newMessage` event to every subscriber of the channel.

        Best-effort: returns how many connections the event was queued for.
        """
        return await self._broadcast(str(channel_id), NEW_MESSAGE, message)

    async def broadcast_message_deleted(self, channel_id: Any, message_id: Any) -> int:
        """Push a `deletedMessage` marker to every subscriber of the channel."""
        channel_id = str(channel_id)
        payload = {"messageId": str(message_id), "channelId": channel_id}
        return await self._broadcast(channel_id, DELETED_MESSAGE, payload)

    async def _broadcast(self, channel_id: str, event: str, data: dict[str, Any]) -> int:
        async with self._lock:
            targets = [
                self._connections[cid]
                for cid in self._subscribers.get(channel_id, ())
                if cid in self._connections
            ]
        delivered = sum(1 for connection in targets if connection.push(event, data))
        logger.info(
            "gateway.broadcast",
            event_name=event,
            channel_id=channel_id,
            subscribers=len(targets),
            delivered=delivered,
        )
        return delivered

    # ─── Client frames ──────────────────────────────────

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        """Dispatch one client frame: {"event": ..., "data": {...}}.

        Any failure is reported as an `error` event to this connection
        only; it never propagates to the caller or other connections.
        """
        event = None
        try:
            frame = json.loads(raw)
            if not isinstance(frame, dict):
                raise FrameError("Frame must be a JSON object")
            event = frame.get("event")
            data = frame.get("data") or {}

            if event == PING:
                connection.push(PONG, {})
                return

            if event == JOIN_CHANNEL:
                await self.join_channel(connection.id, _channel_id(data))
            elif event == LEAVE_CHANNEL:
                await self.leave_channel(connection.id, _channel_id(data))
            else:
                raise FrameError(f"Unknown event: {event}")
        except json.JSONDecodeError:
            connection.push(ERROR, {"message": "Malformed JSON frame"})
        except FrameError as e:
            connection.push(ERROR, {"message": str(e)})
        except Exception as e:
            logger.exception(
                "gateway.frame_failed", connection_id=connection.id, event_name=event
            )
            connection.push(ERROR, {"message": f"{event or 'frame'} failed: {e}"})

    # ─── Introspection / shutdown ───────────────────────

    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, channel_id: Any) -> int:
        return len(self._subscribers.get(str(channel_id), ()))

    def subscriptions(self, connection_id: str) -> frozenset[str]:
        return frozenset(self._subscriptions.get(connection_id, ()))

    def state_of(self, connection_id: str) -> ConnectionState:
        channels = self._subscriptions.get(connection_id)
        if channels is None:
            return ConnectionState.CLOSED
        return ConnectionState.SUBSCRIBED if channels else ConnectionState.AUTHENTICATED

    async def close(self) -> None:
        """Drop every connection and subscription (application shutdown)."""
        async with self._lock:
            self._closed = True
            connections = list(self._connections.values())
            self._connections.clear()
            self._subscriptions.clear()
            self._subscribers.clear()
        for connection in connections:
            connection.close()
        logger.info("gateway.closed", connections=len(connections))


def _channel_id(data: Any) -> str:
    if not isinstance(data, dict):
        raise FrameError("Event data must be a JSON object")
    channel_id = data.get("channelId")
    if not isinstance(channel_id, str) or not channel_id.strip():
        raise FrameError("channelId is required")
    return channel_id.strip()
