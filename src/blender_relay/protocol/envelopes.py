"""Envelope definitions for the client ↔ relay hop.

Every frame on the client-facing WebSocket is a JSON object:

    {"id": "7", "type": "command", "data": {"action": "create_sphere", ...}}

Requests (``command``, ``render``) carry an ``id``; the reply echoes it.
Notifications (``status``, ``error``, ``blender_message``,
``connection_status``) carry no ``id`` and are broadcast to every client.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

# User-facing error and status texts shared by the relay and the client SDK.
NOT_CONNECTED_MESSAGE = "Not connected to Blender MCP server"
COMMAND_TIMEOUT_MESSAGE = "Command timeout"
RENDER_TIMEOUT_MESSAGE = "Render timeout"
INVALID_MESSAGE_FORMAT = "Invalid message format"

# 1x1 transparent PNG, returned when a render reply has no image content.
PLACEHOLDER_IMAGE = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk"
    "+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)


class EnvelopeType(str, Enum):
    """All envelope types on the client-facing hop."""

    # Client -> Relay
    COMMAND = "command"
    RENDER = "render"

    # Relay -> Client (correlated replies)
    SUCCESS = "success"
    RENDER_COMPLETE = "render_complete"
    ERROR = "error"

    # Relay -> Client (notifications)
    CONNECTION_STATUS = "connection_status"
    STATUS = "status"
    BLENDER_MESSAGE = "blender_message"
    LOG = "log"


REQUEST_TYPES = frozenset({EnvelopeType.COMMAND.value, EnvelopeType.RENDER.value})


class Envelope(BaseModel):
    """A single frame on the client ↔ relay WebSocket."""

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    type: str
    data: Any | None = None
    message: str | None = None
    error: str | None = None
    connected: bool | None = None

    def is_request(self) -> bool:
        """Check if this envelope expects a correlated reply."""
        return self.type in REQUEST_TYPES

    def is_error(self) -> bool:
        return self.type == EnvelopeType.ERROR.value

    def to_json(self) -> str:
        """Serialize to JSON, omitting unset fields."""
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Envelope:
        """Deserialize from JSON.

        Raises:
            ValueError: If the frame is not a JSON object with a ``type``
        """
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("envelope must be a JSON object")
        return cls.model_validate(parsed)

    # =========================================================================
    # Factory methods
    # =========================================================================

    @classmethod
    def command(cls, request_id: str | int, data: dict[str, Any]) -> Envelope:
        return cls(id=request_id, type=EnvelopeType.COMMAND.value, data=data)

    @classmethod
    def render(
        cls,
        request_id: str | int,
        resolution: tuple[int, int] = (512, 512),
        output_path: str = "/tmp/render.png",
        image_format: str = "PNG",
    ) -> Envelope:
        return cls(
            id=request_id,
            type=EnvelopeType.RENDER.value,
            data={
                "output_path": output_path,
                "format": image_format,
                "resolution": list(resolution),
            },
        )

    @classmethod
    def success(cls, request_id: str | int | None, data: Any) -> Envelope:
        return cls(id=request_id, type=EnvelopeType.SUCCESS.value, data=data)

    @classmethod
    def render_complete(cls, request_id: str | int | None, image_data: str) -> Envelope:
        return cls(
            id=request_id,
            type=EnvelopeType.RENDER_COMPLETE.value,
            data={"image_data": image_data},
        )

    @classmethod
    def failure(cls, request_id: str | int | None, error: str) -> Envelope:
        """Create an error envelope (correlated when ``request_id`` is set)."""
        return cls(id=request_id, type=EnvelopeType.ERROR.value, error=error)

    @classmethod
    def status(cls, message: str) -> Envelope:
        return cls(type=EnvelopeType.STATUS.value, message=message)

    @classmethod
    def connection_status(cls, connected: bool) -> Envelope:
        return cls(type=EnvelopeType.CONNECTION_STATUS.value, connected=connected)

    @classmethod
    def blender_message(cls, message: Any) -> Envelope:
        return cls(type=EnvelopeType.BLENDER_MESSAGE.value, data=message)


def validate_envelope(message: dict[str, Any]) -> None:
    """Correlator validator for relay replies.

    Raises:
        pydantic.ValidationError: If the message is not a valid envelope
    """
    Envelope.model_validate(message)
