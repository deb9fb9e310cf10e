"""Blender Relay CLI.

Usage:
    blender-relay serve                          # Run the relay on 127.0.0.1:3001
    blender-relay serve --port 4000 --backend-url ws://blender:8080
    blender-relay health                         # Check a running relay
    blender-relay send "create a shiny red sphere"
    blender-relay render --output scene.png
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
import httpx

from .config import ClientConfig, RelayConfig
from .errors import RelayError
from .interpreter import interpret
from .sdk import ClientSession

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    envvar="BLENDER_RELAY_LOG_LEVEL",
    help="Logging verbosity",
)
def main(log_level: str) -> None:
    """Blender Relay - multiplex UI clients onto one Blender MCP session."""
    _configure_logging(log_level)


# =============================================================================
# Relay server
# =============================================================================


@main.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", type=int, default=None, help="Port to bind to")
@click.option("--backend-url", default=None, help="Blender MCP server WebSocket URL")
@click.option("--reconnect-delay", type=float, default=None, help="Seconds between backend reconnects")
@click.option("--command-timeout", type=float, default=None, help="Backend deadline for commands")
@click.option("--render-timeout", type=float, default=None, help="Backend deadline for renders")
def serve(
    host: str | None,
    port: int | None,
    backend_url: str | None,
    reconnect_delay: float | None,
    command_timeout: float | None,
    render_timeout: float | None,
) -> None:
    """Run the relay server."""
    import uvicorn

    from .app import create_app

    try:
        config = RelayConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    overrides: dict[str, Any] = {
        "host": host,
        "port": port,
        "backend_url": backend_url,
        "reconnect_delay": reconnect_delay,
        "command_timeout": command_timeout,
        "render_timeout": render_timeout,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)

    click.echo(f"Backend proxy server running on http://{config.host}:{config.port}", err=True)
    click.echo(f"Blender MCP server: {config.backend_url}", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)


@main.command()
@click.option("--url", default="http://localhost:3001", help="Relay base URL")
def health(url: str) -> None:
    """Check relay health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url}/health")
        except httpx.ConnectError:
            click.echo(f"Cannot connect to relay at {url}", err=True)
            sys.exit(1)

        if response.status_code != 200:
            click.echo(f"Relay returned {response.status_code}", err=True)
            sys.exit(1)

        data = response.json()
        backend = "connected" if data.get("backendConnected") else "disconnected"
        click.echo(
            f"Relay is healthy: backend {backend}, "
            f"{data.get('activeConnections', 0)} active connection(s)"
        )

    asyncio.run(check())


# =============================================================================
# Client commands
# =============================================================================


def _client_config(relay_url: str | None) -> ClientConfig:
    try:
        config = ClientConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if relay_url:
        config.relay_url = relay_url
    return config


def _run_client(config: ClientConfig, action: Callable[[ClientSession], Awaitable[None]]) -> None:
    """Connect a session, run one action, and report failures as exit code 1."""

    async def go() -> None:
        session = ClientSession(config)
        session.on_message = lambda message: click.echo(f"Blender: {message}", err=True)
        session.on_error = lambda error: click.echo(f"Error: {error}", err=True)
        session.start()
        try:
            await session.wait_connected()
            await action(session)
        finally:
            await session.close()

    try:
        asyncio.run(go())
    except RelayError as e:
        click.echo(f"Failed: {e.message}", err=True)
        sys.exit(1)


@main.command()
@click.argument("text")
@click.option("--relay-url", default=None, help="Relay WebSocket URL")
def send(text: str, relay_url: str | None) -> None:
    """Interpret TEXT and send it to Blender."""
    command = interpret(text)
    click.echo(f"Interpretation: {command.description}", err=True)

    async def action(session: ClientSession) -> None:
        result = await session.issue_command(command)
        click.echo("Command sent to Blender successfully", err=True)
        if result is not None:
            click.echo(json.dumps(result, indent=2))

    _run_client(_client_config(relay_url), action)


@main.command()
@click.option("--relay-url", default=None, help="Relay WebSocket URL")
@click.option("--width", type=int, default=512, help="Render width in pixels")
@click.option("--height", type=int, default=512, help="Render height in pixels")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the image to this file")
def render(relay_url: str | None, width: int, height: int, output: str | None) -> None:
    """Render the scene."""

    async def action(session: ClientSession) -> None:
        image = await session.request_render((width, height))
        click.echo("Render completed successfully", err=True)
        if output:
            payload = image.split(",", 1)[1] if image.startswith("data:") else image
            with open(output, "wb") as f:
                f.write(base64.b64decode(payload))
            click.echo(f"Saved render to {output}", err=True)
        else:
            click.echo(image)

    _run_client(_client_config(relay_url), action)


if __name__ == "__main__":
    main()
