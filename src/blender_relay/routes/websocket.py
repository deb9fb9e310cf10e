"""WebSocket endpoint for attached clients.

Protocol:
1. Client connects to ``/`` (or ``/ws``)
2. Relay sends ``connection_status`` with current backend connectivity
3. Client sends ``command`` / ``render`` envelopes carrying an ``id``
4. Relay answers each on the same connection with ``success``,
   ``render_complete`` or ``error`` echoing that ``id``
5. Status changes and unsolicited backend messages are broadcast to all
   clients as ``status``, ``error`` and ``blender_message`` envelopes
"""

from __future__ import annotations

import logging

from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)


async def relay_endpoint(websocket: WebSocket) -> None:
    """Attach a client to the relay for the lifetime of its socket."""
    relay = websocket.app.state.relay
    try:
        await relay.serve_client(websocket)
    except Exception as e:
        logger.exception(f"Client WebSocket error: {e}")


websocket_routes = [
    WebSocketRoute("/", relay_endpoint),
    WebSocketRoute("/ws", relay_endpoint),
]
