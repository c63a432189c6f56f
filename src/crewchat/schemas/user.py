"""Pydantic schemas for accounts and auth.

Learn: UserRead is the only shape a user ever leaves the API in. It has
no password field, so a hash can't leak by forgetting to strip it;
to_user_read() is the single projection from the ORM row.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_PATTERN = r"^[a-zA-Z0-9_가-힣]+$"
DISPLAY_NAME_PATTERN = r"^[\w\s\-.,()]*$"


def _check_password_strength(value: str) -> str:
    if not any(c.islower() for c in value):
        raise ValueError("Password must contain a lower-case letter")
    if not any(c.isupper() for c in value):
        raise ValueError("Password must contain an upper-case letter")
    if not any(c.isdigit() for c in value):
        raise ValueError("Password must contain a digit")
    return value


# ─── Auth ───────────────────────────────────────────────

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    display_name: Optional[str] = Field(None, max_length=50, pattern=DISPLAY_NAME_PATTERN)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    email_or_username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    username: str
    display_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserRead


# ─── Profile ────────────────────────────────────────────

class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    display_name: Optional[str] = Field(None, max_length=50, pattern=DISPLAY_NAME_PATTERN)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


def to_user_read(user) -> UserRead:
    """Project a User row into its public view."""
    return UserRead.model_validate(user)
