"""Client registry and broadcaster.

Owns the table of attached downstream connections. Callers never iterate
the table themselves; they register, unregister, broadcast to everyone, or
route a reply to exactly one connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from .protocol.envelopes import Envelope

logger = logging.getLogger(__name__)


class ClientConnection(Protocol):
    """What the registry needs from a downstream connection."""

    id: str

    @property
    def is_open(self) -> bool: ...

    async def send(self, envelope: Envelope) -> bool: ...


class ClientRegistry:
    """Tracks attached clients and fans out notifications to them."""

    def __init__(self, upstream_connected: Callable[[], bool] | None = None):
        """Create a registry.

        Args:
            upstream_connected: Reports current backend connectivity; used for
                                the snapshot sent to each newly attached client
        """
        self._connections: dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()
        self._upstream_connected = upstream_connected or (lambda: False)

    @property
    def count(self) -> int:
        """Number of registered connections."""
        return len(self._connections)

    def bind_status(self, upstream_connected: Callable[[], bool]) -> None:
        """Set the connectivity source used for attach snapshots."""
        self._upstream_connected = upstream_connected

    async def register(self, connection: ClientConnection) -> str:
        """Register a connection and send it the current connectivity snapshot.

        Returns:
            The connection id
        """
        async with self._lock:
            self._connections[connection.id] = connection
        logger.info(f"Client connected: {connection.id} ({self.count} attached)")
        await connection.send(Envelope.connection_status(self._upstream_connected()))
        return connection.id

    async def unregister(self, connection_id: str) -> None:
        """Remove a connection. Unknown ids are ignored."""
        async with self._lock:
            removed = self._connections.pop(connection_id, None)
        if removed is not None:
            logger.info(f"Client disconnected: {connection_id} ({self.count} attached)")

    async def broadcast(self, envelope: Envelope) -> int:
        """Send an envelope to every open connection.

        Connections that closed between enumeration and send are skipped.

        Returns:
            Number of clients the envelope was delivered to
        """
        async with self._lock:
            targets = list(self._connections.values())

        delivered = 0
        for connection in targets:
            if not connection.is_open:
                continue
            try:
                if await connection.send(envelope):
                    delivered += 1
            except Exception:
                logger.exception(f"Broadcast to {connection.id} failed")
        return delivered

    async def route_to_one(self, connection_id: str, envelope: Envelope) -> bool:
        """Deliver an envelope to exactly one connection.

        Returns:
            True if delivered, False if the connection is gone or closed
        """
        async with self._lock:
            connection = self._connections.get(connection_id)
        if connection is None or not connection.is_open:
            logger.debug(f"Dropping {envelope.type} for departed client {connection_id}")
            return False
        return await connection.send(envelope)
