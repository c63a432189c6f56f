"""Pydantic schemas for channels and membership."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ChannelCreate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_public: bool = True
    password: Optional[str] = Field(None, min_length=4, max_length=100)
    is_dm: bool = False
    recipient_id: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def check_shape(self):
        if self.is_dm:
            if self.recipient_id is None:
                raise ValueError("recipient_id is required for a DM channel")
        elif not self.name:
            raise ValueError("name is required")
        return self


class ChannelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_public: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=4, max_length=100)


class ChannelJoin(BaseModel):
    password: Optional[str] = Field(None, min_length=4, max_length=100)


class ChannelRead(BaseModel):
    """Public view of a channel. The password hash is never exposed."""

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_public: bool
    is_dm: bool
    has_password: bool
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def to_channel_read(channel) -> ChannelRead:
    """Project a Channel row into its public view."""
    return ChannelRead.model_validate(channel)
