"""Client-side session to the relay.

Mirrors the relay's upstream session from the client's side, with one
deliberate difference: reconnection is bounded. After a drop the session
waits ``reconnect_delay`` seconds and retries, at most
``max_reconnect_attempts`` times in a row; then it reports
``MaxReconnectAttemptsExceeded`` and stops, so the user can be asked to
intervene. A successful connection resets the attempt counter.

Usage:
    session = ClientSession(ClientConfig(relay_url="ws://localhost:3001"))
    session.start()
    await session.wait_connected()
    await session.issue_command(AbstractCommand(action="create_sphere"))
    image = await session.request_render()
    await session.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import ClientConfig
from ..correlator import RequestCorrelator
from ..errors import MaxReconnectAttemptsExceeded, RemoteError, RequestTimeout, TransportError
from ..protocol.envelopes import (
    COMMAND_TIMEOUT_MESSAGE,
    NOT_CONNECTED_MESSAGE,
    PLACEHOLDER_IMAGE,
    RENDER_TIMEOUT_MESSAGE,
    Envelope,
    EnvelopeType,
    validate_envelope,
)
from ..protocol.translator import AbstractCommand
from ..transport.websocket import Connector, SessionState, connect_websocket

logger = logging.getLogger(__name__)

CONNECTION_LOST_MESSAGE = "Connection to relay lost"


class ClientSession:
    """Connection from a client (CLI, UI) to the relay."""

    def __init__(self, config: ClientConfig | None = None, *, connect: Connector | None = None):
        self.config = config or ClientConfig()
        self._connect = connect or connect_websocket
        self._ws: Any = None
        self._state = SessionState.DISCONNECTED
        self._task: asyncio.Task[None] | None = None
        self._connected = asyncio.Event()
        self._closing = False

        self.reconnect_attempts = 0
        self.backend_connected: bool | None = None
        self.correlator = RequestCorrelator("client", id_format=str, validator=validate_envelope)

        # UI callbacks
        self.on_connection_change: Callable[[bool], None] | None = None
        self.on_message: Callable[[str], None] | None = None
        self.on_error: Callable[[str], None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.CONNECTED and self._ws is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Run the connection loop in the background."""
        if self._task is None or self._task.done():
            self._closing = False
            self._task = asyncio.create_task(self.run())

    async def wait_connected(self, timeout: float | None = None) -> None:
        """Wait until the session is connected.

        Raises:
            MaxReconnectAttemptsExceeded: If the loop gave up first
            TransportError: If not connected within ``timeout``
        """
        if self.is_open:
            return
        if self._task is None:
            raise TransportError(NOT_CONNECTED_MESSAGE)

        waiter = asyncio.create_task(self._connected.wait())
        try:
            await asyncio.wait(
                {waiter, self._task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()

        if self.is_open:
            return
        if self._task.done() and not self._task.cancelled() and self._task.exception():
            raise self._task.exception()  # type: ignore[misc]
        raise TransportError(NOT_CONNECTED_MESSAGE)

    async def close(self) -> None:
        """Disconnect and stop reconnecting."""
        self._closing = True
        if self._ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await self._ws.close()
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, MaxReconnectAttemptsExceeded):
                await self._task
            self._task = None

    async def run(self) -> None:
        """Connect, and reconnect after drops until the attempt limit.

        Raises:
            MaxReconnectAttemptsExceeded: When every allowed attempt has failed
        """
        limit = self.config.max_reconnect_attempts
        while True:
            await self._connect_once()
            if self._closing:
                return

            if self.reconnect_attempts >= limit:
                error = MaxReconnectAttemptsExceeded(self.reconnect_attempts)
                logger.error(f"Giving up on {self.config.relay_url} after {limit} attempts")
                self._emit(self.on_error, error.message)
                raise error

            self.reconnect_attempts += 1
            await asyncio.sleep(self.config.reconnect_delay)
            if self._closing:
                return
            self._emit(self.on_message, f"Reconnection attempt {self.reconnect_attempts}/{limit}")

    async def _connect_once(self) -> None:
        url = self.config.relay_url
        self._state = SessionState.CONNECTING
        try:
            ws = await self._connect(url)
        except (OSError, WebSocketException, TimeoutError) as e:
            self._state = SessionState.DISCONNECTED
            logger.warning(f"Failed to connect to relay at {url}: {e}")
            self._emit(self.on_error, "WebSocket connection error")
            return

        self._ws = ws
        self._state = SessionState.CONNECTED
        self.reconnect_attempts = 0
        self._connected.set()
        logger.info(f"Connected to relay at {url}")
        self._emit(self.on_connection_change, True)

        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning(f"Relay connection closed: {e}")
        finally:
            self._state = SessionState.DISCONNECTED
            self._ws = None
            self._connected.clear()
            self.correlator.fail_all(CONNECTION_LOST_MESSAGE)

        logger.info(f"Disconnected from relay at {url}")
        self._emit(self.on_connection_change, False)

    # =========================================================================
    # Operations
    # =========================================================================

    async def send_json(self, payload: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise TransportError(NOT_CONNECTED_MESSAGE)
        try:
            await ws.send(json.dumps(payload))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"{CONNECTION_LOST_MESSAGE}: {e}") from e

    async def issue_command(self, command: AbstractCommand | dict[str, Any]) -> Any:
        """Send a command and wait for the relay's acknowledgement.

        Returns:
            The ``data`` of the relay's ``success`` reply

        Raises:
            TransportError: If not connected
            RequestTimeout: If no reply arrives within the command deadline
            RemoteError: If the relay answered with an error
        """
        data = command.model_dump() if isinstance(command, AbstractCommand) else dict(command)
        reply = await self._request(
            lambda request_id: Envelope.command(request_id, data),
            self.config.command_timeout,
            COMMAND_TIMEOUT_MESSAGE,
        )
        if reply.type == EnvelopeType.SUCCESS.value:
            return reply.data
        raise RemoteError(reply.error or "Command failed")

    async def request_render(self, resolution: tuple[int, int] = (512, 512)) -> str:
        """Ask the backend to render the scene.

        Returns:
            The rendered image as base64 (or a data URL); a 1x1 placeholder if
            the reply carried no image

        Raises:
            TransportError: If not connected
            RequestTimeout: If no reply arrives within the render deadline
            RemoteError: If the relay answered with an error
        """
        reply = await self._request(
            lambda request_id: Envelope.render(request_id, resolution),
            self.config.render_timeout,
            RENDER_TIMEOUT_MESSAGE,
        )
        if reply.type == EnvelopeType.RENDER_COMPLETE.value:
            data = reply.data if isinstance(reply.data, dict) else {}
            return data.get("image_data") or PLACEHOLDER_IMAGE
        raise RemoteError(reply.error or "Render failed")

    async def _request(
        self,
        build: Callable[[str], Envelope],
        timeout: float,
        timeout_message: str,
    ) -> Envelope:
        if not self.is_open:
            raise TransportError(NOT_CONNECTED_MESSAGE)

        request_id = str(self.correlator.next_id())
        envelope = build(request_id)
        try:
            reply = await self.correlator.issue(
                self,
                request_id,
                envelope.model_dump(mode="json", exclude_none=True),
                timeout,
            )
        except RequestTimeout as e:
            raise RequestTimeout(request_id, timeout, timeout_message) from e
        return Envelope.model_validate(reply)

    # =========================================================================
    # Notifications
    # =========================================================================

    def _handle_frame(self, raw: str | bytes) -> None:
        unclaimed = self.correlator.dispatch(raw)
        if unclaimed is None:
            return
        try:
            envelope = Envelope.model_validate(unclaimed)
        except ValidationError:
            self._emit(self.on_error, "Failed to parse message from server")
            return

        if envelope.id is not None:
            logger.debug(f"Ignoring late {envelope.type} reply for request {envelope.id}")
            return

        if envelope.type in (EnvelopeType.STATUS.value, EnvelopeType.LOG.value):
            self._emit(self.on_message, envelope.message or "")
        elif envelope.type == EnvelopeType.ERROR.value:
            self._emit(self.on_error, envelope.error or "Unknown error")
        elif envelope.type == EnvelopeType.CONNECTION_STATUS.value:
            self.backend_connected = bool(envelope.connected)
            logger.info(f"Relay backend connected: {self.backend_connected}")
        elif envelope.type == EnvelopeType.BLENDER_MESSAGE.value:
            self._emit(self.on_message, json.dumps(envelope.data))
        else:
            logger.debug(f"Unhandled notification type: {envelope.type}")

    def _emit(self, callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Session callback failed")
