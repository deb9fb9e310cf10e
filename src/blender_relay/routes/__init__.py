"""HTTP and WebSocket routes for the relay."""

from .health import health_routes
from .websocket import websocket_routes

__all__ = ["health_routes", "websocket_routes"]
