"""JSON-RPC 2.0 types for the relay ↔ backend hop.

The Blender MCP server speaks MCP over WebSocket: every call is a
``tools/call`` request and every reply echoes the request ``id``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, model_validator

TOOLS_CALL = "tools/call"


class ToolCallParams(BaseModel):
    """Parameters of an MCP ``tools/call`` request."""

    name: str
    arguments: dict[str, Any]


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request. This is the remote call descriptor sent upstream."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int
    method: str = TOOLS_CALL
    params: ToolCallParams

    @classmethod
    def tool_call(cls, request_id: str | int, name: str, arguments: dict[str, Any]) -> JsonRpcRequest:
        """Create a ``tools/call`` request."""
        return cls(id=request_id, params=ToolCallParams(name=name, arguments=arguments))

    @property
    def tool_name(self) -> str:
        return self.params.name

    @property
    def arguments(self) -> dict[str, Any]:
        return self.params.arguments


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response.

    Exactly one of ``result`` or ``error`` is expected. A reply carrying
    neither is rejected as malformed.
    """

    jsonrpc: str = "2.0"
    id: str | int | None
    result: Any | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="before")
    @classmethod
    def _require_outcome(cls, data: Any) -> Any:
        if isinstance(data, dict) and "result" not in data and "error" not in data:
            raise ValueError("response carries neither 'result' nor 'error'")
        return data

    def is_error(self) -> bool:
        return self.error is not None


def validate_response(message: dict[str, Any]) -> None:
    """Correlator validator for backend replies.

    Raises:
        pydantic.ValidationError: If the message is not a JSON-RPC response
    """
    JsonRpcResponse.model_validate(message)
