"""JWT token creation and verification.

Learn: Access tokens are short-lived and carry the identity claims
(sub, email, username) that both REST handlers and realtime connections
use as their authorization context. Refresh tokens only carry `sub` and
can be exchanged for a new pair, never used as an identity.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from crewchat.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as proven by an access token."""

    user_id: uuid.UUID
    email: str
    username: str


def create_access_token(
    user_id: uuid.UUID | str,
    email: str,
    username: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token carrying the identity claims."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "username": username,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(
    user_id: uuid.UUID | str,
    expires_days: Optional[int] = None,
) -> str:
    """Create a JWT refresh token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "iat": now,
        "exp": now + timedelta(days=expires_days or settings.refresh_token_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify signature and expiry, returning the decoded payload.

    Raises TokenError on failure.
    """
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


def identity_from_token(token: str) -> Identity:
    """Verify an access token and turn its claims into an Identity."""
    payload = verify_token(token)
    if payload.get("type") != "access":
        raise TokenError("Not an access token")
    try:
        return Identity(
            user_id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            username=payload["username"],
        )
    except (KeyError, TypeError, ValueError):
        raise TokenError("Invalid token payload")


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` value."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        return token or None
    return None
