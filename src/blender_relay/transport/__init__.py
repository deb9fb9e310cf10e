"""Connection wrappers for the relay's WebSocket hops."""

from .websocket import (
    ConnectionState,
    Connector,
    Direction,
    DownstreamConnection,
    SessionState,
    connect_websocket,
    next_connection_id,
)

__all__ = [
    "ConnectionState",
    "Connector",
    "Direction",
    "DownstreamConnection",
    "SessionState",
    "connect_websocket",
    "next_connection_id",
]
