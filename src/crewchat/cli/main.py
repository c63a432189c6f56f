"""CrewChat CLI — run the server and talk to it from a terminal.

Usage:
    crewchat serve --reload                      # Run the API (uvicorn)
    crewchat init-db                             # Create tables directly
    crewchat signup a@x.com alice Passw0rd       # Create an account
    crewchat login alice Passw0rd                # Print a token
    crewchat channels                            # Public channel directory
    crewchat channels --mine                     # Channels you belong to
    crewchat create-channel general              # Create a channel
    crewchat join <channel-id> --password s3cret # Join a channel
    crewchat send <channel-id> "hello"           # Post a message
    crewchat history <channel-id>                # Read a channel's messages

Authenticated commands take --token or the CREWCHAT_TOKEN env var.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("CREWCHAT_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the CrewChat backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an already running loop (e.g. CliRunner under an async test)
    the coroutine is offloaded to a worker thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the access token from the flag or CREWCHAT_TOKEN."""
    tok = token or os.environ.get("CREWCHAT_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set CREWCHAT_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _check(r: httpx.Response) -> None:
    """Exit with the server's error detail on a 4xx/5xx response."""
    if r.is_success:
        return
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    if not isinstance(detail, str):
        detail = json.dumps(detail, default=str)
    click.secho(f"Error ({r.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "-")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


token_option = click.option("--token", help="Access token (or set CREWCHAT_TOKEN)")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="crewchat")
def main():
    """CrewChat — group messaging backend and terminal client."""


# ---------------------------------------------------------------------------
# Server commands
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: CREWCHAT_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: CREWCHAT_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API and realtime server with uvicorn."""
    import uvicorn

    from crewchat.config import settings

    uvicorn.run(
        "crewchat.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command("init-db")
def init_db():
    """Create all tables directly (local SQLite setups).

    Postgres deployments should run `alembic upgrade head` instead.
    """
    from crewchat.config import settings
    from crewchat.db.engine import create_all

    _run(create_all())
    click.secho(f"Tables created in {settings.database_url}", fg="green")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.argument("username")
@click.argument("password")
@click.option("--display-name", help="Optional display name")
def signup(email: str, username: str, password: str, display_name: Optional[str]):
    """Create an account."""
    _run(_signup_impl(email, username, password, display_name))


async def _signup_impl(email: str, username: str, password: str,
                       display_name: Optional[str]):
    body: dict = {"email": email, "username": username, "password": password}
    if display_name:
        body["display_name"] = display_name

    async with _client() as c:
        r = await c.post("/api/v1/auth/signup", json=body)
        _check(r)
        user = r.json()
        click.secho(f"Created user {user['username']} ({user['id']})", fg="green")


@main.command()
@click.argument("email_or_username")
@click.argument("password")
def login(email_or_username: str, password: str):
    """Log in and print an access token.

    Use it with: export CREWCHAT_TOKEN=<token>
    """
    _run(_login_impl(email_or_username, password))


async def _login_impl(email_or_username: str, password: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/login", json={
            "email_or_username": email_or_username,
            "password": password,
        })
        _check(r)
        tokens = r.json()
        click.echo(tokens["access_token"])


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@main.command()
@click.option("--mine", is_flag=True, help="Only channels you belong to (DMs included)")
@token_option
def channels(mine: bool, token: Optional[str]):
    """List channels."""
    _run(_channels_impl(mine, token))


async def _channels_impl(mine: bool, token: Optional[str]):
    if mine:
        path = "/api/v1/channels/my-channels"
        token = _token_from_ctx(token)
    else:
        path = "/api/v1/channels"

    async with _client(token) as c:
        r = await c.get(path)
        _check(r)
        rows = r.json()

    if not rows:
        click.echo("No channels found.")
        return

    for row in rows:
        row["visibility"] = "dm" if row["is_dm"] else ("public" if row["is_public"] else "private")
    click.secho(f"Channels ({len(rows)}):", bold=True)
    click.echo()
    _print_table(rows, [
        ("ID", "id", 36),
        ("Name", "name", 24),
        ("Visibility", "visibility", 10),
        ("Description", "description", 40),
    ])


@main.command("create-channel")
@click.argument("name")
@click.option("--description", "-d", help="Channel description")
@click.option("--private", "private", is_flag=True, help="Create a private channel")
@click.option("--password", help="Join password (private channels)")
@token_option
def create_channel(name: str, description: Optional[str], private: bool,
                   password: Optional[str], token: Optional[str]):
    """Create a channel; you become its first member."""
    _run(_create_channel_impl(name, description, private, password, token))


async def _create_channel_impl(name: str, description: Optional[str], private: bool,
                               password: Optional[str], token: Optional[str]):
    body: dict = {"name": name, "is_public": not private}
    if description:
        body["description"] = description
    if password:
        body["password"] = password

    async with _client(_token_from_ctx(token)) as c:
        r = await c.post("/api/v1/channels", json=body)
        _check(r)
        channel = r.json()
        click.secho(f"Created #{channel['name']} ({channel['id']})", fg="green")


@main.command()
@click.argument("channel_id")
@click.option("--password", help="Channel password (private channels)")
@token_option
def join(channel_id: str, password: Optional[str], token: Optional[str]):
    """Join a channel."""
    _run(_join_impl(channel_id, password, token))


async def _join_impl(channel_id: str, password: Optional[str], token: Optional[str]):
    async with _client(_token_from_ctx(token)) as c:
        body = {"password": password} if password else None
        r = await c.post(f"/api/v1/channels/{channel_id}/join", json=body)
        _check(r)
        channel = r.json()
        click.secho(f"Joined #{channel['name']}", fg="green")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@main.command()
@click.argument("channel_id")
@click.argument("content")
@token_option
def send(channel_id: str, content: str, token: Optional[str]):
    """Post a message to a channel you belong to."""
    _run(_send_impl(channel_id, content, token))


async def _send_impl(channel_id: str, content: str, token: Optional[str]):
    async with _client(_token_from_ctx(token)) as c:
        r = await c.post("/api/v1/messages", json={
            "channel_id": channel_id,
            "content": content,
        })
        _check(r)
        message = r.json()
        click.echo(f"Sent {message['id']}")


@main.command()
@click.argument("channel_id")
@token_option
def history(channel_id: str, token: Optional[str]):
    """Show a channel's messages, oldest first."""
    _run(_history_impl(channel_id, token))


async def _history_impl(channel_id: str, token: Optional[str]):
    async with _client(_token_from_ctx(token)) as c:
        r = await c.get(f"/api/v1/messages/channel/{channel_id}")
        _check(r)
        messages = r.json()

    if not messages:
        click.echo("No messages yet.")
        return

    for m in messages:
        author = (m.get("author") or {}).get("username", m["author_id"][:8])
        stamp = m["created_at"][:19].replace("T", " ")
        click.echo(f"[{stamp}] {click.style(author, fg='cyan')}: {m['content']}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
