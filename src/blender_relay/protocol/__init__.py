"""Wire protocol for both relay hops.

- envelopes: client ↔ relay frames (``command``, ``render``, notifications)
- jsonrpc: relay ↔ backend JSON-RPC 2.0 ``tools/call`` requests and replies
- translator: abstract command → remote call descriptor
"""

from .envelopes import PLACEHOLDER_IMAGE, Envelope, EnvelopeType
from .jsonrpc import JsonRpcError, JsonRpcRequest, JsonRpcResponse
from .translator import SUPPORTED_ACTIONS, AbstractCommand, render_command, translate

__all__ = [
    "Envelope",
    "EnvelopeType",
    "PLACEHOLDER_IMAGE",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "AbstractCommand",
    "SUPPORTED_ACTIONS",
    "render_command",
    "translate",
]
