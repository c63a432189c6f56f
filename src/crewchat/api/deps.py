"""Service providers for route handlers.

Learn: Each request builds its services from its own database session;
the message service also gets the application's realtime gateway, so
routes never reach for process-wide state themselves.
"""

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from crewchat.db.engine import get_db
from crewchat.realtime.gateway import RealtimeGateway
from crewchat.realtime.websocket import get_gateway
from crewchat.services.channel_service import ChannelService
from crewchat.services.errors import ServiceError
from crewchat.services.message_service import MessageService
from crewchat.services.user_service import UserService


def user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def channel_service(db: AsyncSession = Depends(get_db)) -> ChannelService:
    return ChannelService(db)


def message_service(
    db: AsyncSession = Depends(get_db),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> MessageService:
    return MessageService(db, gateway)


def http_error(e: ServiceError) -> HTTPException:
    """Translate a service error into the matching HTTP error."""
    return HTTPException(status_code=e.status_code, detail=str(e))
