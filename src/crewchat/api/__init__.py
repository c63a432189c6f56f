"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: Unlike a blanket router-level auth dependency, routes here take
`identity: Identity = Depends(get_current_user)` themselves: most of
them need the caller's id as an argument anyway, and a few reads
(channel listing, a single channel) are open.
"""

from fastapi import APIRouter

from crewchat.api.auth import router as auth_router
from crewchat.api.channels import router as channels_router
from crewchat.api.health import router as health_router
from crewchat.api.messages import router as messages_router
from crewchat.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(channels_router, tags=["channels"])
api_router.include_router(messages_router, tags=["messages"])
