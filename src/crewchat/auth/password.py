"""Password hashing utilities.

Learn: bcrypt includes a random salt in every hash ("$2b$..."), so the
same password never hashes to the same string twice. Used both for
account passwords and for password-protected private channels.
Passwords are truncated to 72 bytes, bcrypt's input limit.
"""

import bcrypt

from crewchat.config import settings


def hash_password(password: str) -> str:
    """Hash a password with bcrypt using the configured work factor."""
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:72], password_hash.encode("utf-8")
        )
    except (ValueError, TypeError):
        return False
