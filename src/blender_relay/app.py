"""Blender Relay Application.

Creates the Starlette ASGI application with all routes.

Route organization:
- /health - Health check (backend connectivity, attached clients)
- / and /ws - Client WebSocket

The application lifespan starts the upstream reconnect loop on startup
and closes the backend connection on shutdown.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route, WebSocketRoute

from .config import RelayConfig
from .relay import RelayService
from .routes import health_routes, websocket_routes

logger = logging.getLogger(__name__)


def create_app(
    config: RelayConfig | None = None,
    *,
    relay: RelayService | None = None,
    start_upstream: bool = True,
) -> Starlette:
    """Create the relay application.

    Args:
        config: Relay configuration (defaults to the environment)
        relay: Pre-built relay service, mainly for tests
        start_upstream: Whether the lifespan starts the backend reconnect loop

    Returns:
        Configured Starlette application
    """
    config = config or (relay.config if relay else RelayConfig.from_env())
    relay = relay or RelayService(config)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if start_upstream:
            logger.info(f"Attempting to connect to Blender MCP server at {config.backend_url}")
            relay.upstream.start()
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            await relay.upstream.stop()

    routes: list[Route | WebSocketRoute] = []
    routes.extend(health_routes)
    routes.extend(websocket_routes)

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.relay = relay
    return app
