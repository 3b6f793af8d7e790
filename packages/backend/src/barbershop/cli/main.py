"""Barbershop realtime CLI — watch the push stream, emit events, mint dev tokens.

Usage:
    barbershop token user-123 --role ADMIN            # Dev access token
    barbershop listen --token $TOKEN                  # Print every event
    barbershop listen -e notification:new -e notification:read
    barbershop emit appointment:changed \\
        --payload '{"appointmentId": "a1", "status": "CONFIRMED"}' --user user-123
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
from pydantic import ValidationError

from barbershop.events.types import ALL_EVENT_TYPES, WILDCARD

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop — normal CLI invocation
        return asyncio.run(coro)
    else:
        # Already inside an event loop (e.g. test runner) — run in a thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the access token from flag or BARBERSHOP_TOKEN env var."""
    value = token or os.environ.get("BARBERSHOP_TOKEN")
    if not value:
        click.secho(
            "Error: --token required (or set BARBERSHOP_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return value


def _status_color(status: str) -> str:
    """Map connection statuses to click colors."""
    colors = {
        "connecting": "white",
        "connected": "green",
        "reconnecting": "yellow",
        "fallback": "red",
    }
    return colors.get(status, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="barbershop")
def main():
    """Barbershop realtime — inspect and drive the push event stream."""


# ---------------------------------------------------------------------------
# barbershop token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id")
@click.option("--role", help="User role claim (e.g. ADMIN, BARBER, CLIENT)")
@click.option("--expires", type=int, help="Lifetime in minutes")
def token(user_id: str, role: Optional[str], expires: Optional[int]):
    """Mint a development access token for USER_ID."""
    from barbershop.auth.jwt import create_access_token

    click.echo(create_access_token(user_id, role=role, expires_minutes=expires))


# ---------------------------------------------------------------------------
# barbershop listen
# ---------------------------------------------------------------------------


@main.command()
@click.option("--url", help="Push endpoint (default: BARBERSHOP_REALTIME_URL)")
@click.option("--token", "-t", "token_", help="Access token (or set BARBERSHOP_TOKEN)")
@click.option(
    "--event", "-e", "events", multiple=True,
    help="Event type to print (repeatable, default: all)",
)
@click.option("--relay", is_flag=True, help="Share events with other tabs via Redis")
def listen(url: Optional[str], token_: Optional[str], events: tuple[str, ...], relay: bool):
    """Connect to the push stream and print events as they arrive."""
    unknown = set(events) - ALL_EVENT_TYPES - {WILDCARD}
    if unknown:
        click.secho(f"Unknown event types: {', '.join(sorted(unknown))}", fg="red", err=True)
        sys.exit(1)

    try:
        _run(_listen_impl(url, _token_from_ctx(token_), list(events) or [WILDCARD], relay))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


async def _listen_impl(url: Optional[str], access_token: str, events: list[str], relay: bool):
    from barbershop.client import (
        ConnectionManager,
        RedisBroadcastChannel,
        Session,
        SSETransport,
    )

    session = Session.from_token(access_token)
    if not session.is_authenticated:
        click.secho("Token rejected — falling back to polling mode.", fg="yellow", err=True)

    channel = None
    redis = None
    if relay and session.is_authenticated:
        from barbershop.realtime.pubsub import close_redis, init_redis

        redis = await init_redis()
        channel = RedisBroadcastChannel(redis, session.user_id)

    def on_status(old, new):
        click.secho(f"[{new.value}]", fg=_status_color(new.value), err=True)

    def on_event(event):
        click.echo(f"{event.type}  {event.event_id}  {event.payload.model_dump_json(by_alias=True)}")

    def on_fallback():
        click.secho("(poll) push unavailable — refresh your data", fg="yellow", err=True)

    manager = ConnectionManager(SSETransport(url), channel=channel)
    manager.add_status_listener(on_status)
    manager.subscribe(events, on_event, on_fallback)
    try:
        await manager.start(session)
        while True:
            await asyncio.sleep(3600)
    finally:
        await manager.close()
        if redis is not None:
            await close_redis()


# ---------------------------------------------------------------------------
# barbershop emit
# ---------------------------------------------------------------------------


@main.command()
@click.argument("event_type", type=click.Choice(sorted(ALL_EVENT_TYPES)))
@click.option("--payload", "-p", default="{}", help="Payload as a JSON object")
@click.option("--user", "-u", "users", multiple=True, help="Target user id (repeatable)")
@click.option("--role", "-r", "roles", multiple=True, help="Target role (repeatable)")
@click.option("--broadcast", is_flag=True, help="Deliver to every connected user")
def emit(event_type: str, payload: str, users: tuple[str, ...],
         roles: tuple[str, ...], broadcast: bool):
    """Publish an EVENT_TYPE event through Redis."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        click.secho(f"Invalid --payload JSON: {e}", fg="red", err=True)
        sys.exit(1)

    if not (users or roles or broadcast):
        click.secho(
            "Warning: no --user, --role or --broadcast — nobody will receive this.",
            fg="yellow",
            err=True,
        )

    _run(_emit_impl(event_type, data, list(users), list(roles), broadcast))


async def _emit_impl(event_type: str, data: dict, users: list[str],
                     roles: list[str], broadcast: bool):
    from barbershop.realtime.pubsub import close_redis, emit_realtime_event, init_redis
    from barbershop.schemas.realtime import RealtimeTarget

    try:
        await init_redis()
    except Exception as e:
        click.secho(f"Error: Redis unavailable ({e})", fg="red", err=True)
        await close_redis()
        sys.exit(1)

    try:
        event = await emit_realtime_event(
            event_type,
            data,
            RealtimeTarget(users=users, roles=roles, broadcast=broadcast),
        )
    except ValidationError as e:
        click.secho(f"Invalid payload for {event_type}:\n{e}", fg="red", err=True)
        sys.exit(1)
    finally:
        await close_redis()

    click.secho(f"Emitted {event.type} ({event.event_id})", fg="green")
