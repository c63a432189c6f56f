"""Channel API routes.

Learn: Routes translate HTTP to ChannelService calls and map service
errors to statuses. The service owns every rule (name uniqueness, DMs,
creator-only edits, password joins):
- POST /channels → create (creator becomes the first member)
- GET /channels → public directory, DMs excluded
- GET /channels/my-channels → the caller's channels, DMs included
- GET /channels/{id}, GET /channels/{id}/members
- PATCH /channels/{id}, DELETE /channels/{id} → creator only
- POST /channels/{id}/join (optional password), POST /channels/{id}/leave
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response

from crewchat.api.deps import channel_service, http_error
from crewchat.auth.dependencies import get_current_user
from crewchat.auth.jwt import Identity
from crewchat.schemas.channel import (
    ChannelCreate,
    ChannelJoin,
    ChannelRead,
    ChannelUpdate,
    to_channel_read,
)
from crewchat.schemas.user import UserRead, to_user_read
from crewchat.services.channel_service import ChannelService
from crewchat.services.errors import ServiceError

router = APIRouter(prefix="/channels")


# ═══════════════════════════════════════════════════════════
# Channels
# ═══════════════════════════════════════════════════════════


@router.post("", response_model=ChannelRead, status_code=201)
async def create_channel(
    body: ChannelCreate,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    """Create a channel, or open (or reuse) a DM with `recipient_id`."""
    try:
        channel = await svc.create_channel(
            name=body.name,
            description=body.description,
            is_public=body.is_public,
            password=body.password,
            is_dm=body.is_dm,
            recipient_id=body.recipient_id,
            created_by=identity.user_id,
        )
    except ServiceError as e:
        raise http_error(e)
    return to_channel_read(channel)


@router.get("", response_model=list[ChannelRead])
async def list_channels(svc: ChannelService = Depends(channel_service)):
    return [to_channel_read(c) for c in await svc.list_channels()]


@router.get("/my-channels", response_model=list[ChannelRead])
async def my_channels(
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    try:
        channels = await svc.list_user_channels(identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return [to_channel_read(c) for c in channels]


@router.get("/{channel_id}", response_model=ChannelRead)
async def get_channel(
    channel_id: uuid.UUID,
    svc: ChannelService = Depends(channel_service),
):
    try:
        return to_channel_read(await svc.get_channel(channel_id))
    except ServiceError as e:
        raise http_error(e)


@router.get("/{channel_id}/members", response_model=list[UserRead])
async def list_members(
    channel_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    try:
        members = await svc.list_members(channel_id, identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return [to_user_read(u) for u in members]


@router.patch("/{channel_id}", response_model=ChannelRead)
async def update_channel(
    channel_id: uuid.UUID,
    body: ChannelUpdate,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    """Partial update (creator only)."""
    try:
        channel = await svc.update_channel(
            channel_id,
            identity.user_id,
            name=body.name,
            description=body.description,
            is_public=body.is_public,
            password=body.password,
        )
    except ServiceError as e:
        raise http_error(e)
    return to_channel_read(channel)


@router.delete("/{channel_id}", status_code=204)
async def delete_channel(
    channel_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    try:
        await svc.delete_channel(channel_id, identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return Response(status_code=204)


# ═══════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════


@router.post("/{channel_id}/join", response_model=ChannelRead)
async def join_channel(
    channel_id: uuid.UUID,
    body: Optional[ChannelJoin] = None,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    """Join a channel. Private channels need `password` in the body."""
    try:
        channel = await svc.join_channel(
            channel_id,
            identity.user_id,
            password=body.password if body else None,
        )
    except ServiceError as e:
        raise http_error(e)
    return to_channel_read(channel)


@router.post("/{channel_id}/leave")
async def leave_channel(
    channel_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: ChannelService = Depends(channel_service),
):
    try:
        await svc.leave_channel(channel_id, identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return {"channel_id": str(channel_id), "left": True}
