"""Error taxonomy for the relay.

Hop-local errors (transport, timeout, malformed reply, bad command)
are delivered to the one caller that issued the failing request. They are
never allowed to escape into the relay's connection loops.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for all relay errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(RelayError):
    """The hop's connection was not open, or dropped while a request was pending."""


class RequestTimeout(RelayError):
    """No matching reply arrived before the request's deadline."""

    def __init__(self, request_id: str | int, timeout: float, message: str | None = None) -> None:
        super().__init__(message or f"Request {request_id} timed out after {timeout:g}s")
        self.request_id = request_id
        self.timeout = timeout


class MalformedReply(RelayError):
    """A reply claimed a pending request but could not be parsed or validated."""

    def __init__(self, request_id: str | int | None, message: str) -> None:
        super().__init__(message)
        self.request_id = request_id


class UnsupportedCommand(RelayError):
    """The translator has no mapping for the requested action."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Unsupported command: {action}")
        self.action = action


class InvalidCommand(RelayError):
    """The command names an action or tool but its data is malformed."""

    def __init__(self, action: str, detail: str) -> None:
        super().__init__(f"Invalid command data for {action}: {detail}")
        self.action = action
        self.detail = detail


class MaxReconnectAttemptsExceeded(RelayError):
    """Client-side reconnection gave up after the configured number of attempts."""

    def __init__(self, attempts: int) -> None:
        super().__init__("Maximum reconnection attempts reached")
        self.attempts = attempts


class RemoteError(RelayError):
    """The peer answered the request with an error instead of a result."""

    def __init__(self, message: str, code: int | None = None, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data
