"""Relay service: accepts client requests and forwards them upstream.

Each downstream request runs in its own task, so a slow backend call never
holds up other frames on the same connection or other clients. The outcome
of every request, success or failure, is routed back to the originating
connection only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError
from starlette.websockets import WebSocket

from .config import RelayConfig
from .errors import InvalidCommand, MalformedReply, RelayError, RequestTimeout, UnsupportedCommand
from .protocol.envelopes import (
    COMMAND_TIMEOUT_MESSAGE,
    NOT_CONNECTED_MESSAGE,
    PLACEHOLDER_IMAGE,
    RENDER_TIMEOUT_MESSAGE,
    Envelope,
    EnvelopeType,
)
from .protocol.jsonrpc import JsonRpcRequest, JsonRpcResponse
from .protocol.translator import SUPPORTED_ACTIONS, AbstractCommand, render_command, translate
from .registry import ClientRegistry
from .transport.websocket import Connector, DownstreamConnection
from .upstream import UpstreamSession

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "Invalid response from Blender"
INVALID_RENDER_RESPONSE_MESSAGE = "Invalid render response from Blender"


def extract_image(result: Any) -> str | None:
    """Return the first image payload in an MCP tool result, if any."""
    if not isinstance(result, dict):
        return None
    content = result.get("content")
    if not isinstance(content, list):
        return None
    for item in content:
        if isinstance(item, dict) and item.get("type") == "image" and item.get("data"):
            return item["data"]
    return None


class RelayService:
    """Glues the client registry, translator, and upstream session together."""

    def __init__(
        self,
        config: RelayConfig | None = None,
        *,
        registry: ClientRegistry | None = None,
        upstream: UpstreamSession | None = None,
        connect: Connector | None = None,
    ):
        self.config = config or RelayConfig()
        self.registry = registry or ClientRegistry()
        self.upstream = upstream or UpstreamSession(self.config, self.registry, connect=connect)

    def health(self) -> dict[str, Any]:
        """Synchronous health snapshot."""
        return {
            "status": "ok",
            "backendConnected": self.upstream.is_open,
            "activeConnections": self.registry.count,
        }

    # =========================================================================
    # Downstream connections
    # =========================================================================

    async def serve_client(self, websocket: WebSocket) -> None:
        """Serve one client WebSocket until it disconnects."""
        connection = DownstreamConnection(websocket)
        await connection.accept()
        await self.registry.register(connection)

        tasks: set[asyncio.Task[None]] = set()
        try:
            async for envelope in connection.receive_envelopes():
                logger.debug(f"Message from {connection.id}: {envelope.type} id={envelope.id}")
                task = asyncio.create_task(self.handle_envelope(connection.id, envelope))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        finally:
            await self.registry.unregister(connection.id)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await connection.close()

    async def handle_envelope(self, connection_id: str, envelope: Envelope) -> None:
        """Process one client request and route the reply to its sender."""
        try:
            reply = await self.process(envelope)
        except Exception as e:
            logger.exception(f"Error handling {envelope.type} from {connection_id}: {e}")
            reply = Envelope.failure(envelope.id, str(e))

        if reply is not None:
            await self.registry.route_to_one(connection_id, reply)

    async def process(self, envelope: Envelope) -> Envelope | None:
        """Turn a client request into its reply envelope.

        Returns:
            The reply, or None for frames that expect no reply
        """
        if envelope.type == EnvelopeType.COMMAND.value:
            return await self._handle_command(envelope)
        if envelope.type == EnvelopeType.RENDER.value:
            return await self._handle_render(envelope)
        if envelope.id is not None:
            return Envelope.failure(envelope.id, f"Unknown message type: {envelope.type}")
        logger.debug(f"Ignoring {envelope.type} frame without id")
        return None

    # =========================================================================
    # Request handlers
    # =========================================================================

    async def _handle_command(self, envelope: Envelope) -> Envelope:
        if not self.upstream.is_open:
            return Envelope.failure(envelope.id, NOT_CONNECTED_MESSAGE)

        try:
            descriptor = self.build_call(envelope.data)
            response = await self.upstream.send(descriptor, self.config.command_timeout)
        except RequestTimeout:
            return Envelope.failure(envelope.id, COMMAND_TIMEOUT_MESSAGE)
        except MalformedReply as e:
            logger.warning(f"Malformed reply for command {envelope.id}: {e}")
            return Envelope.failure(envelope.id, INVALID_RESPONSE_MESSAGE)
        except RelayError as e:
            return Envelope.failure(envelope.id, e.message)

        return Envelope.success(envelope.id, _result_payload(response))

    async def _handle_render(self, envelope: Envelope) -> Envelope:
        if not self.upstream.is_open:
            return Envelope.failure(envelope.id, NOT_CONNECTED_MESSAGE)

        data = envelope.data if isinstance(envelope.data, dict) else {}
        command = render_command(
            resolution=data.get("resolution"),
            output_path=data.get("output_path"),
            image_format=data.get("format"),
        )
        try:
            descriptor = translate(command, self.upstream.next_id())
            response = await self.upstream.send(descriptor, self.config.render_timeout)
        except RequestTimeout:
            return Envelope.failure(envelope.id, RENDER_TIMEOUT_MESSAGE)
        except MalformedReply as e:
            logger.warning(f"Malformed reply for render {envelope.id}: {e}")
            return Envelope.failure(envelope.id, INVALID_RENDER_RESPONSE_MESSAGE)
        except RelayError as e:
            return Envelope.failure(envelope.id, e.message)

        image = extract_image(response.result)
        if image is None:
            logger.info(f"Render {envelope.id} returned no image; using placeholder")
            image = PLACEHOLDER_IMAGE
        return Envelope.render_complete(envelope.id, image)

    def build_call(self, data: Any) -> JsonRpcRequest:
        """Build the backend call for a ``command`` envelope's data.

        ``{"action": ..., "parameters": ...}`` is translated; a raw tool call
        ``{"name": ..., "arguments": ...}`` is passed through unchanged.

        Raises:
            UnsupportedCommand: If the data is neither, or names an unknown action
            InvalidCommand: If a supported action or a tool call carries malformed data
        """
        if isinstance(data, dict) and "action" not in data and "name" in data:
            arguments = data.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise InvalidCommand(str(data["name"]), "arguments must be an object")
            return JsonRpcRequest.tool_call(self.upstream.next_id(), str(data["name"]), arguments)

        try:
            command = AbstractCommand.model_validate(data)
        except ValidationError as e:
            action = data.get("action") if isinstance(data, dict) else None
            logger.warning(f"Rejecting invalid command data: {e}")
            if isinstance(action, str) and action in SUPPORTED_ACTIONS:
                raise InvalidCommand(action, _validation_summary(e)) from e
            raise UnsupportedCommand(str(action) if action is not None else "<missing>") from e
        return translate(command, self.upstream.next_id())


def _validation_summary(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()
    )


def _result_payload(response: JsonRpcResponse) -> Any:
    if response.result is not None:
        return response.result
    return response.model_dump(mode="json", exclude_none=True)
