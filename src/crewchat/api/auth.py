"""Auth API — signup, login, token refresh.

Learn: Routes for account creation and session tokens:
- POST /auth/signup → create a new account
- POST /auth/login → email or username + password → JWT tokens
- POST /auth/refresh → refresh token → new token pair
- GET /auth/me → current user info

Passwords are hashed by the user service before anything is stored, and
responses only ever carry UserRead, so no hash leaves the server.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from crewchat.api.deps import http_error, user_service
from crewchat.auth.dependencies import get_current_user
from crewchat.auth.jwt import (
    Identity,
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from crewchat.schemas.user import (
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
    UserRead,
    to_user_read,
)
from crewchat.services.errors import ServiceError
from crewchat.services.user_service import UserService

router = APIRouter(prefix="/auth")


def _token_pair(user) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.email, user.username),
        refresh_token=create_refresh_token(user.id),
        user=to_user_read(user),
    )


# ─── Signup ──────────────────────────────────────────────


@router.post("/signup", response_model=UserRead, status_code=201)
async def signup(body: SignupRequest, svc: UserService = Depends(user_service)):
    """Create a new user account."""
    try:
        user = await svc.create_user(
            email=body.email,
            password=body.password,
            username=body.username,
            display_name=body.display_name,
        )
    except ServiceError as e:
        raise http_error(e)
    return to_user_read(user)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, svc: UserService = Depends(user_service)):
    """Login with email (or username) and password → JWT tokens."""
    try:
        user = await svc.authenticate(body.email_or_username, body.password)
    except ServiceError as e:
        raise http_error(e)
    return _token_pair(user)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, svc: UserService = Depends(user_service)):
    """Exchange a refresh token for a new token pair.

    The account is re-read so deactivated or deleted users can't keep
    renewing their session.
    """
    try:
        payload = verify_token(body.refresh_token)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Not a refresh token")

    try:
        user = await svc.get_user(uuid.UUID(payload["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    except ServiceError:
        raise HTTPException(status_code=401, detail="User no longer exists")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return _token_pair(user)


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    """Get the current authenticated user's info."""
    try:
        user = await svc.get_user(identity.user_id)
    except ServiceError as e:
        raise http_error(e)
    return to_user_read(user)
