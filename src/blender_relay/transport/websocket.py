"""WebSocket connections for both sides of the relay.

Server side: ``DownstreamConnection`` wraps a Starlette WebSocket accepted
by the relay. Each client connection gets a process-unique id, tracks its
lifecycle state, and serializes sends so concurrent reply tasks never
interleave frames.

Client side: ``connect_websocket`` opens the outbound connections used by
the upstream session and the client SDK session.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

import websockets
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ..protocol.envelopes import INVALID_MESSAGE_FORMAT, Envelope

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)

# Opens an outbound WebSocket; injectable so tests can supply fake peers.
Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Lifecycle of a connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Direction(str, Enum):
    """Which side of the relay a connection faces."""

    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"


class SessionState(str, Enum):
    """State machine of a reconnecting outbound session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def next_connection_id(prefix: str = "conn") -> str:
    """Return an id that is unique for the lifetime of the process."""
    return f"{prefix}_{next(_connection_ids)}"


async def connect_websocket(url: str) -> Any:
    """Open an outbound WebSocket connection."""
    return await websockets.connect(url, ping_interval=30, ping_timeout=10)


class DownstreamConnection:
    """Server-side WebSocket to one attached client."""

    direction = Direction.DOWNSTREAM

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        self._websocket = websocket
        self.id = connection_id or next_connection_id()
        self._state = ConnectionState.CONNECTING
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if the WebSocket is open for sending."""
        return (
            self._state == ConnectionState.OPEN
            and self._websocket.client_state == WebSocketState.CONNECTED
        )

    async def accept(self) -> None:
        """Accept the WebSocket handshake."""
        await self._websocket.accept()
        self._state = ConnectionState.OPEN

    async def close(self) -> None:
        """Close the WebSocket connection."""
        was_open = self.is_open
        self._state = ConnectionState.CLOSED
        if was_open:
            try:
                await self._websocket.close()
            except RuntimeError as e:
                # Close raced with the client's own close frame.
                logger.debug(f"Close on {self.id} ignored: {e}")

    async def send(self, envelope: Envelope) -> bool:
        """Send an envelope.

        Returns:
            True if the frame was written, False if the connection was not open
        """
        async with self._send_lock:
            if not self.is_open:
                return False
            try:
                await self._websocket.send_text(envelope.to_json())
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Send to {self.id} failed, marking closed: {e}")
                self._state = ConnectionState.CLOSED
                return False
            return True

    async def receive_envelopes(self) -> AsyncIterator[Envelope]:
        """Yield envelopes from the client in arrival order.

        Text and binary frames are both accepted; binary frames must hold
        UTF-8 JSON. Frames that are not valid envelopes are answered with an
        error and skipped. Iteration ends when the client disconnects.
        """
        try:
            while self.is_open:
                message = await self._websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    try:
                        data = (message.get("bytes") or b"").decode("utf-8")
                    except UnicodeDecodeError as e:
                        logger.warning(f"Undecodable binary frame from {self.id}: {e}")
                        await self.send(Envelope.failure(None, INVALID_MESSAGE_FORMAT))
                        continue
                try:
                    envelope = Envelope.from_json(data)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Invalid frame from {self.id}: {e}")
                    await self.send(Envelope.failure(_salvage_id(data), INVALID_MESSAGE_FORMAT))
                    continue
                yield envelope
        except WebSocketDisconnect:
            pass
        finally:
            self._state = ConnectionState.CLOSED


def _salvage_id(data: str) -> str | int | None:
    """Recover the request id from a frame that failed validation, if any."""
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("id"), str | int):
        return parsed["id"]
    return None
