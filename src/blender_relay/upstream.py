"""Upstream session to the Blender MCP backend.

The relay owns exactly one backend connection. The reconnect policy is
unbounded: after every drop or failed attempt the session waits
``reconnect_delay`` seconds and tries again, until ``stop()`` is called.
The client-side session in ``sdk.session`` deliberately uses a bounded
policy instead; do not merge the two.

Inbound frames go to the correlator first. Frames no pending call claims
are broadcast to every attached client as ``blender_message`` envelopes.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import RelayConfig
from .correlator import RequestCorrelator
from .errors import RemoteError, TransportError
from .protocol.envelopes import NOT_CONNECTED_MESSAGE, Envelope
from .protocol.jsonrpc import JsonRpcRequest, JsonRpcResponse, validate_response
from .registry import ClientRegistry
from .transport.websocket import (
    Connector,
    Direction,
    SessionState,
    connect_websocket,
    next_connection_id,
)

logger = logging.getLogger(__name__)

CONNECTED_STATUS = "Connected to Blender MCP server"
DISCONNECTED_STATUS = "Disconnected from Blender MCP server"
CONNECTION_LOST_MESSAGE = "Connection to Blender MCP server lost"


class UpstreamSession:
    """Owns the single connection to the execution backend."""

    direction = Direction.UPSTREAM

    def __init__(
        self,
        config: RelayConfig,
        registry: ClientRegistry,
        *,
        connect: Connector | None = None,
    ):
        self.config = config
        self._registry = registry
        self._connect = connect or connect_websocket
        self._state = SessionState.DISCONNECTED
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.connection_id: str | None = None
        self.correlator = RequestCorrelator("upstream", validator=validate_response)

        registry.bind_status(lambda: self.is_open)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if calls can be sent to the backend."""
        return self._state == SessionState.CONNECTED and self._ws is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the reconnect loop in the background."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run())

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop reconnecting and close the backend connection."""
        self._stopping.set()
        if self._ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await self._ws.close()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
            self._task = None

    async def run(self) -> None:
        """Connect, serve, and reconnect until stopped."""
        while not self._stopping.is_set():
            await self._connect_once()
            if self._stopping.is_set():
                break
            delay = self.config.reconnect_delay
            logger.info(f"Reconnecting to {self.config.backend_url} in {delay:g}s")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)

    async def _connect_once(self) -> None:
        """One pass through connecting → connected → disconnected."""
        url = self.config.backend_url
        self._state = SessionState.CONNECTING
        try:
            ws = await self._connect(url)
        except (OSError, WebSocketException, TimeoutError) as e:
            self._state = SessionState.DISCONNECTED
            logger.error(f"Failed to connect to Blender MCP server at {url}: {e}")
            await self._registry.broadcast(
                Envelope.failure(
                    None,
                    "Failed to connect to Blender MCP server. "
                    f"Please ensure it is running on {url}",
                )
            )
            return

        self._ws = ws
        self.connection_id = next_connection_id("upstream")
        self._state = SessionState.CONNECTED
        logger.info(f"Connected to Blender MCP server at {url} ({self.connection_id})")
        await self._registry.broadcast(Envelope.status(CONNECTED_STATUS))

        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning(f"Blender MCP connection closed: {e}")
        finally:
            self._state = SessionState.DISCONNECTED
            self._ws = None
            self.correlator.fail_all(CONNECTION_LOST_MESSAGE)
            with contextlib.suppress(WebSocketException, OSError):
                await ws.close()

        logger.info(f"Disconnected from Blender MCP server ({self.connection_id})")
        await self._registry.broadcast(Envelope.status(DISCONNECTED_STATUS))

    async def _handle_frame(self, raw: str | bytes) -> None:
        unclaimed = self.correlator.dispatch(raw)
        if unclaimed is not None:
            logger.debug(f"Unsolicited message from Blender: {unclaimed}")
            await self._registry.broadcast(Envelope.blender_message(unclaimed))

    # =========================================================================
    # Calls
    # =========================================================================

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Write one frame to the backend."""
        ws = self._ws
        if ws is None:
            raise TransportError(NOT_CONNECTED_MESSAGE)
        try:
            await ws.send(json.dumps(payload))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"{CONNECTION_LOST_MESSAGE}: {e}") from e

    def next_id(self) -> int | str:
        """Allocate a correlation id for the next backend call."""
        return self.correlator.next_id()

    async def send(self, descriptor: JsonRpcRequest, timeout: float) -> JsonRpcResponse:
        """Send a remote call and wait for its reply.

        Raises:
            TransportError: If the backend is not connected or drops
            RequestTimeout: If no reply arrives within ``timeout``
            MalformedReply: If the reply is not a JSON-RPC response
            RemoteError: If the backend answered with an error
        """
        if not self.is_open:
            raise TransportError(NOT_CONNECTED_MESSAGE)

        reply = await self.correlator.issue(
            self,
            descriptor.id,
            descriptor.model_dump(mode="json"),
            timeout,
        )
        response = JsonRpcResponse.model_validate(reply)
        if response.error is not None:
            raise RemoteError(
                response.error.message,
                code=response.error.code,
                data=response.error.data,
            )
        return response

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float | None = None
    ) -> JsonRpcResponse:
        """Call a backend tool by name."""
        descriptor = JsonRpcRequest.tool_call(self.next_id(), name, arguments)
        return await self.send(descriptor, timeout or self.config.command_timeout)
