"""Users API — directory, profile, and account lifecycle.

Learn:
- GET /users, GET /users/{id} → directory (authenticated)
- PATCH /users/me → edit own profile
- PATCH /users/me/password → change own password
- POST /users/{id}/deactivate, /activate and DELETE /users/{id}
  → account owner only; there are no admin roles
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response

from crewchat.api.deps import http_error, user_service
from crewchat.auth.dependencies import get_current_user
from crewchat.auth.jwt import Identity
from crewchat.schemas.user import PasswordChange, UserRead, UserUpdate, to_user_read
from crewchat.services.errors import ServiceError
from crewchat.services.user_service import UserService

router = APIRouter(prefix="/users")


def _require_self(identity: Identity, user_id: uuid.UUID) -> None:
    if identity.user_id != user_id:
        raise HTTPException(status_code=403, detail="You can only manage your own account")


# ─── Directory ───────────────────────────────────────────


@router.get("", response_model=list[UserRead])
async def list_users(
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    return [to_user_read(u) for u in await svc.list_users()]


# ─── Own profile ─────────────────────────────────────────
# Declared before /{user_id} so "me" isn't parsed as an id.


@router.patch("/me", response_model=UserRead)
async def update_me(
    body: UserUpdate,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    """Partial profile update. Send `display_name: null` to clear it."""
    try:
        user = await svc.update_profile(
            identity.user_id,
            email=body.email,
            username=body.username,
            display_name=body.display_name,
            display_name_set="display_name" in body.model_fields_set,
        )
    except ServiceError as e:
        raise http_error(e)
    return to_user_read(user)


@router.patch("/me/password", status_code=204)
async def change_password(
    body: PasswordChange,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    try:
        await svc.change_password(identity.user_id, body.current_password, body.new_password)
    except ServiceError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    try:
        return to_user_read(await svc.get_user(user_id))
    except ServiceError as e:
        raise http_error(e)


# ─── Lifecycle ───────────────────────────────────────────


@router.post("/{user_id}/deactivate", response_model=UserRead)
async def deactivate_user(
    user_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    """Deactivate an account. Deactivated accounts can't log in."""
    _require_self(identity, user_id)
    try:
        return to_user_read(await svc.set_active(user_id, False))
    except ServiceError as e:
        raise http_error(e)


@router.post("/{user_id}/activate", response_model=UserRead)
async def activate_user(
    user_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    _require_self(identity, user_id)
    try:
        return to_user_read(await svc.set_active(user_id, True))
    except ServiceError as e:
        raise http_error(e)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    identity: Identity = Depends(get_current_user),
    svc: UserService = Depends(user_service),
):
    """Delete an account along with its memberships and messages."""
    _require_self(identity, user_id)
    try:
        await svc.delete_user(user_id)
    except ServiceError as e:
        raise http_error(e)
    return Response(status_code=204)
