"""Message service — posting, reading, editing, and deleting messages.

Learn: Membership is checked against the live user_channels table on
every call, never against a cached copy: a user removed from a channel
loses write and delete rights immediately, even for messages they wrote
while still a member.

Every successful create/delete is committed first and then announced
through the realtime gateway exactly once, before the request returns.
If the process dies between the two, the message is durable but was
never pushed; REST reads stay the source of truth.
"""

import uuid
from typing import Any, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crewchat.db.models import Channel, Message, User
from crewchat.schemas.message import MessageRead, to_message_read
from crewchat.services.errors import NotFoundError, PermissionDeniedError
from crewchat.services.membership import MembershipStore

logger = structlog.get_logger()


class MessageBroadcaster(Protocol):
    """What the service needs from the realtime gateway."""

    async def broadcast_message_created(self, channel_id: Any, message: dict[str, Any]) -> int: ...

    async def broadcast_message_deleted(self, channel_id: Any, message_id: Any) -> int: ...


class MessageService:
    """Business logic for channel messages."""

    def __init__(self, db: AsyncSession, broadcaster: MessageBroadcaster):
        self.db = db
        self.broadcaster = broadcaster
        self.membership = MembershipStore(db)

    async def _load(self, message_id: uuid.UUID) -> Message | None:
        """Fetch a message with author and channel snapshots loaded."""
        result = await self.db.execute(
            select(Message)
            .where(Message.id == message_id)
            .options(selectinload(Message.author), selectinload(Message.channel))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _require_channel(self, channel_id: uuid.UUID) -> Channel:
        channel = await self.db.get(Channel, channel_id)
        if not channel:
            raise NotFoundError("Channel not found")
        return channel

    # ─── Create ─────────────────────────────────────────

    async def create_message(
        self, *, content: str, channel_id: uuid.UUID, author_id: uuid.UUID
    ) -> MessageRead:
        """Post a message as a current member, then broadcast `newMessage`."""
        await self._require_channel(channel_id)
        if not await self.membership.is_member(author_id, channel_id):
            raise PermissionDeniedError("Only channel members can post messages")
        if not await self.db.get(User, author_id):
            raise NotFoundError("User not found")

        message = Message(content=content, author_id=author_id, channel_id=channel_id)
        self.db.add(message)
        await self.db.commit()

        view = to_message_read(await self._load(message.id))
        logger.info(
            "message.created",
            message_id=str(view.id),
            channel_id=str(channel_id),
            author_id=str(author_id),
        )
        await self.broadcaster.broadcast_message_created(
            channel_id, view.model_dump(mode="json")
        )
        return view

    # ─── Read ───────────────────────────────────────────

    async def list_channel_messages(
        self, channel_id: uuid.UUID, user_id: uuid.UUID
    ) -> list[MessageRead]:
        """A channel's history, oldest first. Members only."""
        await self._require_channel(channel_id)
        if not await self.membership.is_member(user_id, channel_id):
            raise PermissionDeniedError("Only channel members can read messages")

        result = await self.db.execute(
            select(Message)
            .where(Message.channel_id == channel_id)
            .options(selectinload(Message.author), selectinload(Message.channel))
            .order_by(Message.created_at, Message.id)
        )
        return [to_message_read(m) for m in result.scalars().all()]

    async def list_recent_messages(
        self, user_id: uuid.UUID, limit: int = 100
    ) -> list[MessageRead]:
        """Newest messages across every channel the user belongs to."""
        channel_ids = await self.membership.channel_ids_of(user_id)
        if not channel_ids:
            return []
        result = await self.db.execute(
            select(Message)
            .where(Message.channel_id.in_(channel_ids))
            .options(selectinload(Message.author), selectinload(Message.channel))
            .order_by(Message.created_at.desc(), Message.id)
            .limit(limit)
        )
        return [to_message_read(m) for m in result.scalars().all()]

    # ─── Update / delete ────────────────────────────────

    async def _require_own_message(
        self, message_id: uuid.UUID, user_id: uuid.UUID, action: str
    ) -> Message:
        """Author-only, and the author must still belong to the channel."""
        message = await self._load(message_id)
        if not message:
            raise NotFoundError("Message not found")
        if message.author_id != user_id:
            raise PermissionDeniedError(f"Only the author can {action} this message")
        if not await self.membership.is_member(user_id, message.channel_id):
            raise PermissionDeniedError(f"Only channel members can {action} messages")
        return message

    async def update_message(
        self, message_id: uuid.UUID, user_id: uuid.UUID, content: str
    ) -> MessageRead:
        """Edit content. Edits are not pushed to realtime subscribers."""
        message = await self._require_own_message(message_id, user_id, "edit")
        message.content = content
        await self.db.commit()
        logger.info("message.updated", message_id=str(message_id))
        return to_message_read(await self._load(message_id))

    async def delete_message(self, message_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete a message, then broadcast `deletedMessage`."""
        message = await self._require_own_message(message_id, user_id, "delete")
        channel_id = message.channel_id
        await self.db.delete(message)
        await self.db.commit()
        logger.info(
            "message.deleted", message_id=str(message_id), channel_id=str(channel_id)
        )
        await self.broadcaster.broadcast_message_deleted(channel_id, message_id)
