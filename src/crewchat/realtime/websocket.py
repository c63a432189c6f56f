"""WebSocket endpoint — the realtime messages namespace.

Learn: Each client connects to /ws/messages with an access token, either
as ?token=JWT or as an `Authorization: Bearer` header. The handler:
1. Verifies the token (bounded by ws_auth_timeout_seconds); on failure
   the socket is closed before being accepted, with no error event
2. Registers the connection with the gateway and starts its sender task
3. Feeds every client frame to the gateway (joinChannel / leaveChannel)
4. On disconnect, releases all of the connection's subscriptions
"""

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, Request, WebSocket
from starlette.websockets import WebSocketState

from crewchat.auth.jwt import Identity, TokenError, bearer_token, identity_from_token
from crewchat.config import settings
from crewchat.realtime.events import AUTH_FAILED_CLOSE_CODE
from crewchat.realtime.gateway import Connection, RealtimeGateway

logger = structlog.get_logger()
router = APIRouter()


def get_gateway(request: Request) -> RealtimeGateway:
    """FastAPI dependency — the application's gateway instance."""
    return request.app.state.gateway


def extract_token(websocket: WebSocket) -> Optional[str]:
    """Query parameter first, then the Authorization header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    return bearer_token(websocket.headers.get("authorization"))


async def authenticate(websocket: WebSocket) -> Optional[Identity]:
    token = extract_token(websocket)
    if not token:
        return None
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(identity_from_token, token),
            timeout=settings.ws_auth_timeout_seconds,
        )
    except (TokenError, asyncio.TimeoutError):
        return None


@router.websocket("/ws/messages")
async def messages_websocket(websocket: WebSocket):
    """Long-lived connection receiving message events for subscribed channels."""
    gateway: RealtimeGateway = websocket.app.state.gateway

    # ── Authentication ──────────────────────────────────
    identity = await authenticate(websocket)
    if identity is None:
        logger.info("gateway.rejected", client=str(websocket.client))
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return

    # ── Connection accepted ─────────────────────────────
    await websocket.accept()
    connection = Connection(websocket, identity)
    await gateway.connect(connection)
    sender = asyncio.create_task(connection.run_sender())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            if raw is not None:
                await gateway.handle_frame(connection, raw)
    finally:
        await gateway.disconnect(connection.id)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
