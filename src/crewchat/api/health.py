"""Health check endpoint.

Learn: Reports the server version, database and Redis reachability, and
how many realtime connections are currently live.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from crewchat import __version__
from crewchat.db.engine import get_db
from crewchat.realtime.gateway import RealtimeGateway
from crewchat.realtime.websocket import get_gateway

router = APIRouter()


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Redis backs rate limiting only, so it doesn't affect overall status
    from crewchat.cache import redis_available

    checks["redis"] = "ok" if await redis_available() else "unavailable"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {
        "status": status,
        **checks,
        "realtime_connections": gateway.connection_count(),
    }
