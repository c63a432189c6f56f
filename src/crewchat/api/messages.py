"""Message API routes.

Learn: Posting and deleting go through MessageService, which commits
and then announces the change to realtime subscribers of the channel
before the response is sent:
- POST /messages → post to a channel you belong to
- GET /messages → recent messages across your channels
- GET /messages/channel/{channel_id} → a channel's history (members only)
- PATCH /messages/{id} → edit your own message
- DELETE /messages/{id} → delete your own message
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from crewchat.api.deps import http_error, message_service
from crewchat.auth.dependencies import get_current_user
from crewchat.auth.jwt import Identity
from crewchat.config import settings
from crewchat.schemas.message import MessageCreate, MessageRead, MessageUpdate
from crewchat.services.errors import ServiceError
from crewchat.services.message_service import MessageService

router = APIRouter(prefix="/messages")


@router.post("", response_model=MessageRead, status_code=201)
async def create_message(
    body: MessageCreate,
    identity: Identity = Depends(get_current_user),
    svc: MessageService = Depends(message_service),
):
    try:
        return await svc.create_message(
            content=body.content,
            channel_id=body.channel_id,
            author_id=identity.user_id,
        )
    except ServiceError as e:
        raise http_error(e)


@router.get("", response_model=list[MessageRead])
async def list_recent_messages(
    limit: Optional[int] = Query(None, ge=1, description="Max messages (capped by server config)"),
    identity: Identity = Depends(get_current_user),
    svc: MessageService = Depends(message_service),
):
    """Newest first, across every channel the caller belongs to."""
    cap = settings.message_list_limit
    return await svc.list_recent_messages(identity.user_id, min(limit or cap, cap))


@router.get("/channel/{channel_id}", response_model=list[MessageRead])
async def list_channel_messages(
    channel_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: MessageService = Depends(message_service),
):
    try:
        return await svc.list_channel_messages(channel_id, identity.user_id)
    except ServiceError as e:
        raise http_error(e)


@router.patch("/{message_id}", response_model=MessageRead)
async def update_message(
    message_id: uuid.UUID,
    body: MessageUpdate,
    identity: Identity = Depends(get_current_user),
    svc: MessageService = Depends(message_service),
):
    try:
        return await svc.update_message(message_id, identity.user_id, body.content)
    except ServiceError as e:
        raise http_error(e)


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: MessageService = Depends(message_service),
):
    try:
        await svc.delete_message(message_id, identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return Response(status_code=204)
