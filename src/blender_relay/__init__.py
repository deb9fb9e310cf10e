"""Blender Relay.

Multiplexes many short-lived UI clients onto one long-lived Blender MCP
session, correlating every request with its reply or deadline.
"""

from .app import create_app
from .config import ClientConfig, RelayConfig
from .correlator import RequestCorrelator
from .errors import (
    InvalidCommand,
    MalformedReply,
    MaxReconnectAttemptsExceeded,
    RelayError,
    RemoteError,
    RequestTimeout,
    TransportError,
    UnsupportedCommand,
)
from .registry import ClientRegistry
from .relay import RelayService
from .sdk import ClientSession
from .upstream import UpstreamSession

__version__ = "0.1.0"

__all__ = [
    "create_app",
    "ClientConfig",
    "RelayConfig",
    "RequestCorrelator",
    "ClientRegistry",
    "RelayService",
    "UpstreamSession",
    "ClientSession",
    "RelayError",
    "TransportError",
    "RequestTimeout",
    "MalformedReply",
    "UnsupportedCommand",
    "InvalidCommand",
    "MaxReconnectAttemptsExceeded",
    "RemoteError",
]
