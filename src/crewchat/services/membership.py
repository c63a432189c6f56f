"""Membership store — live reads and writes of the user_channels table.

Learn: Membership is the authorization source for posting and reading
messages, so every check goes straight to the table. Nothing here reads
relationship collections that an identity map could have cached.
"""

import uuid

from sqlalchemy import delete, exists, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from crewchat.db.models import Channel, User, user_channels


class MembershipStore:
    """Thin repository over the user_channels association table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_member(self, user_id: uuid.UUID, channel_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    user_channels.c.user_id == user_id,
                    user_channels.c.channel_id == channel_id,
                )
            )
        )
        return bool(result.scalar())

    async def add(self, user_id: uuid.UUID, channel_id: uuid.UUID) -> None:
        await self.db.execute(
            insert(user_channels).values(user_id=user_id, channel_id=channel_id)
        )

    async def remove(self, user_id: uuid.UUID, channel_id: uuid.UUID) -> bool:
        """Delete one membership row. Returns False if there was none."""
        result = await self.db.execute(
            delete(user_channels).where(
                user_channels.c.user_id == user_id,
                user_channels.c.channel_id == channel_id,
            )
        )
        return result.rowcount > 0

    async def members_of(self, channel_id: uuid.UUID) -> list[User]:
        result = await self.db.execute(
            select(User)
            .join(user_channels, user_channels.c.user_id == User.id)
            .where(user_channels.c.channel_id == channel_id)
            .order_by(user_channels.c.joined_at, User.username)
        )
        return list(result.scalars().all())

    async def member_ids(self, channel_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(user_channels.c.user_id).where(
                user_channels.c.channel_id == channel_id
            )
        )
        return set(result.scalars().all())

    async def channels_of(self, user_id: uuid.UUID) -> list[Channel]:
        result = await self.db.execute(
            select(Channel)
            .join(user_channels, user_channels.c.channel_id == Channel.id)
            .where(user_channels.c.user_id == user_id)
            .order_by(Channel.created_at.desc())
        )
        return list(result.scalars().all())

    async def channel_ids_of(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(user_channels.c.channel_id).where(
                user_channels.c.user_id == user_id
            )
        )
        return list(result.scalars().all())

    async def clear_channel(self, channel_id: uuid.UUID) -> None:
        await self.db.execute(
            delete(user_channels).where(user_channels.c.channel_id == channel_id)
        )

    async def clear_user(self, user_id: uuid.UUID) -> None:
        await self.db.execute(
            delete(user_channels).where(user_channels.c.user_id == user_id)
        )
