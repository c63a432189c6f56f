"""Test fixtures — a fresh in-memory database and gateway per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI + aiosqlite:

1. Each test gets its own in-memory SQLite engine. StaticPool keeps the
   single connection alive, so every session sees the same database.
2. get_db is overridden to hand out sessions from that engine. Each
   request gets its own session, exactly like production, so membership
   checks read committed rows rather than one shared identity map.
3. app.state.gateway is replaced with a fresh RealtimeGateway, so no
   subscriptions leak between tests.

Settings are read at import time, so the environment is prepared
before anything from crewchat is imported: cheap bcrypt rounds, a
SQLite URL for the module-level engine, and an unreachable Redis (rate
limiting stays off).
"""

import os

os.environ["CREWCHAT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CREWCHAT_REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ.setdefault("CREWCHAT_BCRYPT_ROUNDS", "4")

import uuid

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crewchat.auth.jwt import Identity
from crewchat.db.engine import create_all, get_db
from crewchat.main import app
from crewchat.realtime.gateway import Connection, RealtimeGateway

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
PASSWORD = "Passw0rd"


def make_test_engine():
    return create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest_asyncio.fixture()
async def test_engine():
    engine = make_test_engine()
    await create_all(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """A session for driving services directly in unit tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def gateway():
    gw = RealtimeGateway()
    yield gw
    await gw.close()


@pytest_asyncio.fixture()
async def client(session_factory, gateway):
    """HTTP client against the app with get_db and the gateway swapped out."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.gateway = gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(client):
    """Sign up + log in a user; returns (user dict, auth headers).

    Usage:
        alice, alice_auth = await make_user("alice")
    """

    async def _make(username: str | None = None, password: str = PASSWORD):
        username = username or f"user_{uuid.uuid4().hex[:8]}"
        r = await client.post(
            "/api/v1/auth/signup",
            json={
                "email": f"{username}@example.com",
                "username": username,
                "password": password,
            },
        )
        assert r.status_code == 201, r.text
        r = await client.post(
            "/api/v1/auth/login",
            json={"email_or_username": username, "password": password},
        )
        assert r.status_code == 200, r.text
        body = r.json()
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return _make


# ─── Realtime helpers ───────────────────────────────────


class RecordingConnection(Connection):
    """A Connection whose pushes are recorded instead of sent."""

    def __init__(self, username: str = "alice"):
        identity = Identity(
            user_id=uuid.uuid4(),
            email=f"{username}@example.com",
            username=username,
        )
        super().__init__(websocket=None, identity=identity)
        self.frames: list[dict] = []

    def push(self, event, data):
        if self.closed:
            return False
        self.frames.append({"event": event, "data": data})
        return True

    def events(self, name: str) -> list[dict]:
        return [f["data"] for f in self.frames if f["event"] == name]


@pytest.fixture()
def recording_connection():
    """Factory for RecordingConnection instances."""
    return RecordingConnection


# ─── Live app (WebSocket tests) ─────────────────────────


@pytest.fixture()
def live_client():
    """A TestClient running the full app, lifespan included.

    Learn: TestClient drives the app from its own event loop, so the
    database engine and gateway are created for that loop here rather
    than taken from the async fixtures above. Yields (client, gateway).
    """
    engine = make_test_engine()
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    gw = RealtimeGateway()
    app.dependency_overrides[get_db] = override_get_db
    app.state.gateway = gw

    with TestClient(app) as tc:
        tc.portal.call(create_all, engine)
        yield tc, gw
        tc.portal.call(engine.dispose)

    app.dependency_overrides.clear()
