"""Channel service — channel CRUD, DMs, and persisted membership.

Learn: This is where channel authorization lives:
- names are unique among non-DM channels (DMs don't take part)
- only the creator may update or delete a channel
- public channels are always joinable; private ones need the channel
  password, and a private channel without one can't be joined at all
- joining twice is a conflict and leaving a channel you are not in is a
  bad request. Persisted membership is strict, unlike realtime
  subscriptions, which tolerate redundant requests.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crewchat.auth.password import hash_password, verify_password
from crewchat.db.models import Channel, Message, User, user_channels
from crewchat.services.errors import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from crewchat.services.membership import MembershipStore

logger = structlog.get_logger()


def dm_channel_name(first: User, second: User) -> str:
    """Stable DM name, independent of who opened the conversation."""
    names = sorted([first.username, second.username])
    return f"dm:{names[0]}:{names[1]}"


class ChannelService:
    """Business logic for channels and membership."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.membership = MembershipStore(db)

    # ─── Lookups ────────────────────────────────────────

    async def get_channel(self, channel_id: uuid.UUID) -> Channel:
        channel = await self.db.get(Channel, channel_id)
        if not channel:
            raise NotFoundError("Channel not found")
        return channel

    async def list_channels(self) -> list[Channel]:
        """Every non-DM channel, newest first."""
        result = await self.db.execute(
            select(Channel)
            .where(Channel.is_dm.is_(False))
            .order_by(Channel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_user_channels(self, user_id: uuid.UUID) -> list[Channel]:
        """Channels (DMs included) the user currently belongs to."""
        await self._require_user(user_id)
        return await self.membership.channels_of(user_id)

    async def list_members(
        self, channel_id: uuid.UUID, requester_id: Optional[uuid.UUID] = None
    ) -> list[User]:
        """Members of a channel. Non-public channels only show them to members."""
        channel = await self.get_channel(channel_id)
        if not channel.is_public:
            if requester_id is None or not await self.membership.is_member(
                requester_id, channel_id
            ):
                raise PermissionDeniedError("Only members can view this channel's members")
        return await self.membership.members_of(channel_id)

    async def _name_taken(
        self, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> bool:
        query = select(Channel.id).where(Channel.name == name, Channel.is_dm.is_(False))
        if exclude_id is not None:
            query = query.where(Channel.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.first() is not None

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # ─── Create ─────────────────────────────────────────

    async def create_channel(
        self,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_public: bool = True,
        password: Optional[str] = None,
        is_dm: bool = False,
        recipient_id: Optional[uuid.UUID] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> Channel:
        """Create a channel; the creator (if any) becomes its first member."""
        if is_dm:
            return await self._create_dm(
                created_by=created_by,
                recipient_id=recipient_id,
                description=description,
            )

        if not name:
            raise BadRequestError("Channel name is required")
        if await self._name_taken(name):
            raise ConflictError("Channel name already exists")
        if created_by is not None:
            await self._require_user(created_by)

        channel = Channel(
            name=name,
            description=description,
            is_public=is_public,
            is_dm=False,
            # A password only means something on a private channel
            password_hash=hash_password(password) if password and not is_public else None,
            created_by=created_by,
        )
        self.db.add(channel)
        await self.db.flush()

        if created_by is not None:
            await self.membership.add(created_by, channel.id)

        await self.db.commit()
        logger.info(
            "channel.created",
            channel_id=str(channel.id),
            name=name,
            is_public=is_public,
            created_by=str(created_by) if created_by else None,
        )
        return channel

    async def _create_dm(
        self,
        *,
        created_by: Optional[uuid.UUID],
        recipient_id: Optional[uuid.UUID],
        description: Optional[str],
    ) -> Channel:
        """Create (or return the existing) two-member DM channel."""
        if created_by is None:
            raise BadRequestError("A DM channel needs a creator")
        if recipient_id is None:
            raise BadRequestError("A DM channel needs a recipient")
        if recipient_id == created_by:
            raise BadRequestError("Cannot open a DM with yourself")

        creator = await self._require_user(created_by)
        recipient = await self._require_user(recipient_id)

        existing = await self._find_dm(created_by, recipient_id)
        if existing is not None:
            return existing

        channel = Channel(
            name=dm_channel_name(creator, recipient),
            description=description,
            is_public=False,
            is_dm=True,
            created_by=created_by,
        )
        self.db.add(channel)
        await self.db.flush()
        await self.membership.add(created_by, channel.id)
        await self.membership.add(recipient_id, channel.id)
        await self.db.commit()
        logger.info(
            "channel.dm_created",
            channel_id=str(channel.id),
            members=[str(created_by), str(recipient_id)],
        )
        return channel

    async def _find_dm(self, first: uuid.UUID, second: uuid.UUID) -> Channel | None:
        first_dms = select(user_channels.c.channel_id).where(
            user_channels.c.user_id == first
        )
        second_dms = select(user_channels.c.channel_id).where(
            user_channels.c.user_id == second
        )
        result = await self.db.execute(
            select(Channel).where(
                Channel.is_dm.is_(True),
                Channel.id.in_(first_dms),
                Channel.id.in_(second_dms),
            )
        )
        return result.scalars().first()

    # ─── Update / delete ────────────────────────────────

    async def update_channel(
        self,
        channel_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_public: Optional[bool] = None,
        password: Optional[str] = None,
    ) -> Channel:
        """Creator-only update. Renaming to the current name is a no-op."""
        channel = await self.get_channel(channel_id)
        if channel.created_by != user_id:
            raise PermissionDeniedError("Only the channel creator can update it")

        if name is not None and name != channel.name:
            if not channel.is_dm and await self._name_taken(name, exclude_id=channel.id):
                raise ConflictError("Channel name already exists")
            channel.name = name
        if description is not None:
            channel.description = description
        if is_public is not None and not channel.is_dm:
            channel.is_public = is_public
        if password is not None:
            channel.password_hash = hash_password(password)
        if channel.is_public:
            channel.password_hash = None

        await self.db.commit()
        logger.info("channel.updated", channel_id=str(channel_id))
        return channel

    async def delete_channel(self, channel_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Creator-only delete. Messages and membership rows go with it."""
        channel = await self.get_channel(channel_id)
        if channel.created_by != user_id:
            raise PermissionDeniedError("Only the channel creator can delete it")

        await self.db.execute(delete(Message).where(Message.channel_id == channel_id))
        await self.membership.clear_channel(channel_id)
        await self.db.delete(channel)
        await self.db.commit()
        logger.info("channel.deleted", channel_id=str(channel_id))

    # ─── Membership ─────────────────────────────────────

    async def join_channel(
        self,
        channel_id: uuid.UUID,
        user_id: uuid.UUID,
        password: Optional[str] = None,
    ) -> Channel:
        """Add a user to a channel.

        Order of checks: channel and user exist → not already a member →
        access (DMs closed, private channels need a configured and
        matching password).
        """
        channel = await self.get_channel(channel_id)
        await self._require_user(user_id)

        if await self.membership.is_member(user_id, channel_id):
            raise ConflictError("Already a member of this channel")

        if channel.is_dm:
            raise PermissionDeniedError("DM channels can't be joined")
        if not channel.is_public:
            if channel.password_hash is None:
                raise PermissionDeniedError("This private channel can't be joined")
            if not password or not verify_password(password, channel.password_hash):
                raise AuthenticationError("Incorrect channel password")

        try:
            await self.membership.add(user_id, channel_id)
            await self.db.commit()
        except IntegrityError:
            # A concurrent join inserted the same membership row first
            await self.db.rollback()
            raise ConflictError("Already a member of this channel")
        logger.info("channel.joined", channel_id=str(channel_id), user_id=str(user_id))
        return channel

    async def leave_channel(self, channel_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Remove a user from a channel. Non-members get a bad request.

        DMs keep exactly their two members, so they can't be left.
        """
        channel = await self.get_channel(channel_id)
        if channel.is_dm:
            raise PermissionDeniedError("DM channels can't be left")
        if not await self.membership.remove(user_id, channel_id):
            raise BadRequestError("Not a member of this channel")
        await self.db.commit()
        logger.info("channel.left", channel_id=str(channel_id), user_id=str(user_id))
