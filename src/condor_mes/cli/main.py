"""Condor CLI — session administration against a running Condor MES server.

Usage:
    condor token --user-id 7 --role Admin       # Development token (dev servers only)
    condor stats                                 # Revocation map sizes
    condor force-logout 42                       # Close every session of user 42
    condor clear-revocation 42                   # Allow user 42's old tokens again
    condor health                                # Server, Postgres and realtime status

Authenticated commands read the bearer token from --token or CONDOR_TOKEN.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("CONDOR_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the bearer token from flag or CONDOR_TOKEN env var."""
    tok = token or os.environ.get("CONDOR_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set CONDOR_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


async def _request(method: str, path: str, token: Optional[str] = None, **kwargs) -> dict:
    async with _client(token) as c:
        r = await c.request(method, path, **kwargs)
    if r.status_code >= 400:
        click.secho(f"Error {r.status_code}: {r.text}", fg="red", err=True)
        sys.exit(1)
    return r.json()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="condor")
def main():
    """Condor — MES session administration."""


@main.command()
@click.option("--user-id", type=int, default=0, show_default=True)
@click.option("--role", default="SuperAdmin", show_default=True)
@click.option("--name", default="user", show_default=True)
def token(user_id: int, role: str, name: str):
    """Issue a development token and print it."""
    data = asyncio.run(
        _request(
            "POST",
            "/api/v1/auth/token",
            json={"user_id": user_id, "role": role, "name": name},
        )
    )
    click.echo(data["access_token"])


@main.command()
@click.option("--token", "-k", help="Bearer token (or set CONDOR_TOKEN)")
def stats(token: Optional[str]):
    """Show how many tokens and users are currently revoked."""
    data = asyncio.run(
        _request("GET", "/api/v1/auth/revocations/stats", _token_from_ctx(token))
    )
    click.secho("Revocations:", bold=True)
    click.echo(f"  tokens  {data['revoked_tokens']}")
    click.echo(f"  users   {data['revoked_users']}")


@main.command("force-logout")
@click.argument("user_id", type=int)
@click.option("--token", "-k", help="Bearer token (or set CONDOR_TOKEN)")
def force_logout(user_id: int, token: Optional[str]):
    """Close every open session of USER_ID."""
    data = asyncio.run(
        _request("POST", f"/api/v1/users/{user_id}/force-logout", _token_from_ctx(token))
    )
    click.secho(data["message"], fg="green")


@main.command("clear-revocation")
@click.argument("user_id", type=int)
@click.option("--token", "-k", help="Bearer token (or set CONDOR_TOKEN)")
def clear_revocation(user_id: int, token: Optional[str]):
    """Lift a force-logout of USER_ID."""
    data = asyncio.run(
        _request("DELETE", f"/api/v1/users/{user_id}/revocation", _token_from_ctx(token))
    )
    click.secho(data["message"], fg="green")


@main.command()
def health():
    """Print the server health report."""
    data = asyncio.run(_request("GET", "/api/v1/health"))
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    click.echo(_pretty_json(data))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
