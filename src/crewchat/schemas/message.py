"""Pydantic schemas for messages.

Learn: MessageRead is also the `newMessage` realtime payload, so it
carries the author and channel snapshots clients need to render the
event without a follow-up fetch.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from crewchat.schemas.channel import ChannelRead
from crewchat.schemas.user import UserRead


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("Message content must not be blank")
    return value


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    channel_id: uuid.UUID

    @field_validator("content")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class MessageUpdate(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class MessageRead(BaseModel):
    id: uuid.UUID
    content: str
    author_id: uuid.UUID
    channel_id: uuid.UUID
    author: Optional[UserRead] = None
    channel: Optional[ChannelRead] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def to_message_read(message) -> MessageRead:
    """Project a Message row (author and channel loaded) into its public view."""
    return MessageRead.model_validate(message)
