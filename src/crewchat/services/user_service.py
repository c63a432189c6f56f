"""User service — accounts, credentials, and account lifecycle.

Learn: The service returns ORM User rows; the API layer projects them
into UserRead, which has no password field at all. Uniqueness of email,
username, and display name is checked up front so callers get a clear
conflict instead of a database integrity error.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crewchat.auth.password import hash_password, verify_password
from crewchat.db.models import Channel, Message, User
from crewchat.services.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from crewchat.services.membership import MembershipStore

logger = structlog.get_logger()


def normalize_display_name(display_name: Optional[str]) -> Optional[str]:
    """Trim a display name; blank means "no display name"."""
    if display_name is None:
        return None
    return display_name.strip() or None


class UserService:
    """Business logic for user accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.membership = MembershipStore(db)

    # ─── Lookups ────────────────────────────────────────

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def find_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def find_by_username(self, username: str) -> User | None:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalars().first()

    async def find_by_display_name(self, display_name: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.display_name == display_name)
        )
        return result.scalars().first()

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.username))
        return list(result.scalars().all())

    # ─── Signup / login ─────────────────────────────────

    async def create_user(
        self,
        *,
        email: str,
        password: str,
        username: str,
        display_name: Optional[str] = None,
    ) -> User:
        """Register a new account. Password is hashed before it is stored."""
        if await self.find_by_email(email):
            raise ConflictError("Email already registered")
        if await self.find_by_username(username):
            raise ConflictError("Username already taken")
        display_name = normalize_display_name(display_name)
        if display_name and await self.find_by_display_name(display_name):
            raise ConflictError("Display name already taken")

        user = User(
            email=email,
            username=username,
            display_name=display_name,
            password_hash=hash_password(password),
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        logger.info("user.created", user_id=str(user.id), username=username)
        return user

    async def authenticate(self, email_or_username: str, password: str) -> User:
        """Resolve login credentials to a user.

        Unknown user and wrong password are deliberately the same error.
        """
        result = await self.db.execute(
            select(User).where(
                or_(User.email == email_or_username, User.username == email_or_username)
            )
        )
        user = result.scalars().first()
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise PermissionDeniedError("Account is deactivated")
        return user

    # ─── Profile ────────────────────────────────────────

    async def update_profile(
        self,
        user_id: uuid.UUID,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        display_name: Optional[str] = None,
        display_name_set: bool = False,
    ) -> User:
        """Update profile fields. Unchanged values skip the uniqueness check.

        `display_name_set` distinguishes "clear the display name" (explicit
        null) from "leave it alone" (field absent).
        """
        user = await self.get_user(user_id)

        if email is not None and email != user.email:
            if await self.find_by_email(email):
                raise ConflictError("Email already registered")
            user.email = email

        if username is not None and username != user.username:
            if await self.find_by_username(username):
                raise ConflictError("Username already taken")
            user.username = username

        if display_name_set:
            new_display = normalize_display_name(display_name)
            if new_display != user.display_name:
                if new_display:
                    existing = await self.find_by_display_name(new_display)
                    if existing and existing.id != user.id:
                        raise ConflictError("Display name already taken")
                user.display_name = new_display

        await self.db.commit()
        return user

    async def change_password(
        self, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        user = await self.get_user(user_id)
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        await self.db.commit()

    # ─── Lifecycle ──────────────────────────────────────

    async def set_active(self, user_id: uuid.UUID, active: bool) -> User:
        user = await self.get_user(user_id)
        user.is_active = active
        await self.db.commit()
        logger.info("user.active_changed", user_id=str(user_id), active=active)
        return user

    async def delete_user(self, user_id: uuid.UUID) -> None:
        """Hard delete: membership rows and authored messages go with the user.

        Channels the user created survive with a null creator.
        """
        user = await self.get_user(user_id)
        await self.membership.clear_user(user_id)
        await self.db.execute(delete(Message).where(Message.author_id == user_id))
        await self.db.execute(
            update(Channel).where(Channel.created_by == user_id).values(created_by=None)
        )
        await self.db.delete(user)
        await self.db.commit()
        logger.info("user.deleted", user_id=str(user_id))
