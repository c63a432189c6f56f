"""Service-layer tests — rules the REST layer can't reach directly.

Learn: Routes always pass the caller as creator/author, so cases like a
channel without a creator are only reachable by driving the services
with a session of their own.
"""

import uuid

import pytest

from crewchat.auth.jwt import (
    TokenError,
    create_access_token,
    identity_from_token,
)
from crewchat.auth.password import hash_password, verify_password
from crewchat.services.channel_service import ChannelService
from crewchat.services.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from crewchat.services.membership import MembershipStore
from crewchat.services.message_service import MessageService
from crewchat.services.user_service import UserService


async def new_user(db, username: str):
    return await UserService(db).create_user(
        email=f"{username}@example.com", password="Passw0rd", username=username
    )


# ═══════════════════════════════════════════════════════════
# Channels
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_channel_without_creator_has_no_members(db_session):
    svc = ChannelService(db_session)
    channel = await svc.create_channel(name="lobby")

    assert channel.created_by is None
    assert await MembershipStore(db_session).member_ids(channel.id) == set()


@pytest.mark.asyncio
async def test_dm_needs_creator(db_session):
    bob = await new_user(db_session, "bob")
    with pytest.raises(BadRequestError):
        await ChannelService(db_session).create_channel(is_dm=True, recipient_id=bob.id)


@pytest.mark.asyncio
async def test_dm_has_exactly_two_members(db_session):
    alice = await new_user(db_session, "alice")
    bob = await new_user(db_session, "bob")
    svc = ChannelService(db_session)

    dm = await svc.create_channel(is_dm=True, created_by=alice.id, recipient_id=bob.id)

    assert dm.is_dm and not dm.is_public
    assert await svc.membership.member_ids(dm.id) == {alice.id, bob.id}


@pytest.mark.asyncio
async def test_channel_password_is_hashed(db_session):
    alice = await new_user(db_session, "alice")
    channel = await ChannelService(db_session).create_channel(
        name="secret", is_public=False, password="s3cret", created_by=alice.id
    )

    assert channel.password_hash != "s3cret"
    assert verify_password("s3cret", channel.password_hash)


@pytest.mark.asyncio
async def test_join_as_missing_user(db_session):
    channel = await ChannelService(db_session).create_channel(name="lobby")
    with pytest.raises(NotFoundError):
        await ChannelService(db_session).join_channel(channel.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_join_conflict_checked_before_access(db_session):
    """A member re-joining a private channel gets a conflict, not a password error."""
    alice = await new_user(db_session, "alice")
    svc = ChannelService(db_session)
    channel = await svc.create_channel(
        name="secret", is_public=False, password="s3cret", created_by=alice.id
    )

    with pytest.raises(ConflictError):
        await svc.join_channel(channel.id, alice.id)


@pytest.mark.asyncio
async def test_dm_cannot_be_left(db_session):
    """A DM keeps both members, and re-opening it finds the same channel."""
    alice = await new_user(db_session, "alice")
    bob = await new_user(db_session, "bob")
    svc = ChannelService(db_session)
    dm = await svc.create_channel(is_dm=True, created_by=alice.id, recipient_id=bob.id)

    with pytest.raises(PermissionDeniedError):
        await svc.leave_channel(dm.id, bob.id)

    assert await svc.membership.member_ids(dm.id) == {alice.id, bob.id}
    again = await svc.create_channel(is_dm=True, created_by=bob.id, recipient_id=alice.id)
    assert again.id == dm.id


@pytest.mark.asyncio
async def test_concurrent_duplicate_join_is_conflict(db_session):
    """Two joins racing past the membership check: the loser gets a conflict."""
    alice = await new_user(db_session, "alice")
    bob = await new_user(db_session, "bob")
    svc = ChannelService(db_session)
    channel = await svc.create_channel(name="general", created_by=alice.id)
    await svc.join_channel(channel.id, bob.id)
    # The failed insert rolls the session back, expiring loaded rows
    channel_id, expected = channel.id, {alice.id, bob.id}
    bob_id = bob.id

    async def not_yet_a_member(user_id, channel_id):
        return False

    # The other join committed between this one's check and its insert
    svc.membership.is_member = not_yet_a_member
    with pytest.raises(ConflictError):
        await svc.join_channel(channel_id, bob_id)

    assert await MembershipStore(db_session).member_ids(channel_id) == expected


@pytest.mark.asyncio
async def test_public_channel_update_clears_password(db_session):
    alice = await new_user(db_session, "alice")
    svc = ChannelService(db_session)
    channel = await svc.create_channel(
        name="secret", is_public=False, password="s3cret", created_by=alice.id
    )

    channel = await svc.update_channel(channel.id, alice.id, is_public=True)

    assert channel.is_public
    assert channel.password_hash is None


# ═══════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════


class RecordingBroadcaster:
    def __init__(self):
        self.calls: list[tuple] = []

    async def broadcast_message_created(self, channel_id, message):
        self.calls.append(("created", channel_id, message))
        return 0

    async def broadcast_message_deleted(self, channel_id, message_id):
        self.calls.append(("deleted", channel_id, message_id))
        return 0


@pytest.mark.asyncio
async def test_message_broadcast_exactly_once_after_commit(db_session):
    alice = await new_user(db_session, "alice")
    channel = await ChannelService(db_session).create_channel(name="general", created_by=alice.id)
    broadcaster = RecordingBroadcaster()
    svc = MessageService(db_session, broadcaster)

    view = await svc.create_message(content="hi", channel_id=channel.id, author_id=alice.id)
    await svc.delete_message(view.id, alice.id)

    assert [c[0] for c in broadcaster.calls] == ["created", "deleted"]
    assert broadcaster.calls[0][2]["id"] == str(view.id)
    assert broadcaster.calls[1][1:] == (channel.id, view.id)


@pytest.mark.asyncio
async def test_rejected_post_is_not_broadcast(db_session):
    alice = await new_user(db_session, "alice")
    bob = await new_user(db_session, "bob")
    channel = await ChannelService(db_session).create_channel(name="general", created_by=alice.id)
    broadcaster = RecordingBroadcaster()

    with pytest.raises(PermissionDeniedError):
        await MessageService(db_session, broadcaster).create_message(
            content="hi", channel_id=channel.id, author_id=bob.id
        )
    assert broadcaster.calls == []


# ═══════════════════════════════════════════════════════════
# Credentials
# ═══════════════════════════════════════════════════════════


def test_password_hash_roundtrip():
    hashed = hash_password("Passw0rd")
    assert hashed != "Passw0rd"
    assert verify_password("Passw0rd", hashed)
    assert not verify_password("passw0rd", hashed)
    assert not verify_password("Passw0rd", "not-a-bcrypt-hash")


def test_identity_from_token():
    user_id = uuid.uuid4()
    identity = identity_from_token(create_access_token(user_id, "a@x.com", "alice"))
    assert identity.user_id == user_id
    assert identity.username == "alice"

    with pytest.raises(TokenError):
        identity_from_token("garbage")
