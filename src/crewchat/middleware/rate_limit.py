"""Rate limiting middleware — Redis fixed-window counters.

Learn: One counter per client IP, bucket, and minute:
"crewchat:rl:{ip}:{bucket}:{minute}". Signup and login share a much
smaller budget than the rest of the API to slow down credential
guessing. Without Redis the middleware is a pass-through.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from crewchat.cache import get_redis

logger = structlog.get_logger()

AUTH_PATHS = ("/api/v1/auth/login", "/api/v1/auth/signup")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP requests-per-minute limit, stricter on credential endpoints."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        is_auth = request.url.path.startswith(AUTH_PATHS)
        bucket = "auth" if is_auth else "api"
        limit = self.auth_rpm if is_auth else self.default_rpm
        client_ip = request.client.host if request.client else "unknown"
        key = f"crewchat:rl:{client_ip}:{bucket}:{int(time.time() // 60)}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
