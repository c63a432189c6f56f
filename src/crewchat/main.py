"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance with its own RealtimeGateway on app.state. The lifespan manages
startup/shutdown (Redis, gateway, database engine); middleware, CORS,
and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crewchat import __version__
from crewchat.api import api_router
from crewchat.config import settings
from crewchat.realtime.gateway import RealtimeGateway

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Closing the gateway drops every live connection's
    subscriptions and stops their sender tasks.
    """
    logger.info(
        "crewchat.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from crewchat.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("crewchat.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis is optional; without it rate limiting is off
        logger.warning("crewchat.redis_unavailable", error=str(e))

    yield

    logger.info("crewchat.shutdown")
    await app.state.gateway.close()
    await close_redis()

    from crewchat.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="CrewChat",
        description="Group messaging backend with realtime channel delivery",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = RealtimeGateway()

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration:
    # RequestContext → RateLimit → CORS → handler

    from crewchat.middleware.rate_limit import RateLimitMiddleware
    from crewchat.middleware.request_context import RequestContextMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(api_router)

    from crewchat.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: crewchat.main:app)
app = create_app()
