"""FastAPI auth dependencies.

Learn: Route handlers declare `identity: Identity = Depends(get_current_user)`
to require a valid bearer token. The dependency only verifies the token;
it never touches the database, so the identity is exactly what the
token proved at issue time.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException

from crewchat.auth.jwt import Identity, TokenError, bearer_token, identity_from_token


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[Identity]:
    """Resolve the caller if a bearer token is present, else None.

    An invalid token is still an error: a client that sends credentials
    wants to be treated as authenticated.
    """
    token = bearer_token(authorization)
    if token is None:
        return None
    try:
        return identity_from_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Optional[Identity] = Depends(get_current_user_optional),
) -> Identity:
    """Require an authenticated caller (401 otherwise)."""
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
