"""Auth API tests.

Learn: Tests cover:
1. Signup + duplicate prevention (email, username, display name)
2. Signup validation (password strength, username shape)
3. Login by username or email → JWT tokens
4. Token refresh
5. Protected /me endpoint and bad tokens
"""

import pytest

from crewchat.auth.jwt import create_refresh_token


def signup_body(username: str = "alice", **overrides) -> dict:
    body = {
        "email": f"{username}@example.com",
        "username": username,
        "password": "Passw0rd",
    }
    body.update(overrides)
    return body


# ═══════════════════════════════════════════════════════════
# Signup
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_signup_user(client):
    r = await client.post("/api/v1/auth/signup", json=signup_body(display_name="Alice A."))
    assert r.status_code == 201
    user = r.json()
    assert user["email"] == "alice@example.com"
    assert user["username"] == "alice"
    assert user["display_name"] == "Alice A."
    assert user["is_active"] is True
    assert "password" not in user
    assert "password_hash" not in user


@pytest.mark.asyncio
async def test_signup_hangul_username(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json=signup_body("김철수", email="kim@example.com"),
    )
    assert r.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"email": "alice@example.com", "username": "other"},
        {"email": "other@example.com", "username": "alice"},
    ],
)
async def test_signup_duplicate(client, overrides):
    r1 = await client.post("/api/v1/auth/signup", json=signup_body())
    assert r1.status_code == 201

    r2 = await client.post("/api/v1/auth/signup", json=signup_body(**overrides))
    assert r2.status_code == 409


@pytest.mark.asyncio
async def test_signup_duplicate_display_name(client):
    await client.post("/api/v1/auth/signup", json=signup_body("alice", display_name="Sam"))
    r = await client.post("/api/v1/auth/signup", json=signup_body("bob", display_name=" Sam "))
    assert r.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"password": "Sh0rt"},
        {"password": "alllowercase1"},
        {"password": "ALLUPPERCASE1"},
        {"password": "NoDigitsHere"},
        {"username": "ab"},
        {"username": "has space"},
        {"username": "dash-name"},
        {"email": "not-an-email"},
    ],
)
async def test_signup_validation(client, overrides):
    r = await client.post("/api/v1/auth/signup", json=signup_body(**overrides))
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("login_as", ["alice", "alice@example.com"])
async def test_login_success(client, login_as):
    await client.post("/api/v1/auth/signup", json=signup_body())

    r = await client.post(
        "/api/v1/auth/login",
        json={"email_or_username": login_as, "password": "Passw0rd"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["user"]["username"] == "alice"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "login_as, password",
    [("alice", "Wr0ngpass"), ("nobody", "Passw0rd")],
)
async def test_login_bad_credentials(client, login_as, password):
    await client.post("/api/v1/auth/signup", json=signup_body())

    r = await client.post(
        "/api/v1/auth/login",
        json={"email_or_username": login_as, "password": password},
    )
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_deactivated_account(client, make_user):
    user, auth = await make_user("alice")
    r = await client.post(f"/api/v1/users/{user['id']}/deactivate", headers=auth)
    assert r.status_code == 200

    r = await client.post(
        "/api/v1/auth/login",
        json={"email_or_username": "alice", "password": "Passw0rd"},
    )
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_token(client):
    await client.post("/api/v1/auth/signup", json=signup_body())
    r = await client.post(
        "/api/v1/auth/login",
        json={"email_or_username": "alice", "password": "Passw0rd"},
    )
    tokens = r.json()

    r = await client.post(
        "/api/v1/auth/refresh",
        json={"refresh_token": tokens["refresh_token"]},
    )
    assert r.status_code == 200
    new_tokens = r.json()

    r = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {new_tokens['access_token']}"},
    )
    assert r.status_code == 200
    assert r.json()["username"] == "alice"


@pytest.mark.asyncio
async def test_refresh_with_access_token_fails(client, make_user):
    _, auth = await make_user("alice")
    access_token = auth["Authorization"].removeprefix("Bearer ")

    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_for_deleted_user_fails(client, make_user):
    user, auth = await make_user("alice")
    refresh_token = create_refresh_token(user["id"])
    r = await client.delete(f"/api/v1/users/{user['id']}", headers=auth)
    assert r.status_code == 204

    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_garbage_token(client):
    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Current user
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me(client, make_user):
    user, auth = await make_user("alice")
    r = await client.get("/api/v1/auth/me", headers=auth)
    assert r.status_code == 200
    assert r.json()["id"] == user["id"]


@pytest.mark.asyncio
async def test_me_requires_token(client):
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_rejects_bad_token(client):
    r = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_identity(client, make_user):
    user, _ = await make_user("alice")
    refresh_token = create_refresh_token(user["id"])
    r = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh_token}"}
    )
    assert r.status_code == 401
