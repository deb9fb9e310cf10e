"""Blender Relay SDK - client for connecting to a running relay.

``ClientSession`` keeps a bounded-reconnect WebSocket to the relay and
exposes the two client operations, ``issue_command`` and
``request_render``.
"""

from .session import ClientSession

__all__ = ["ClientSession"]
