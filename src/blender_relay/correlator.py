"""Request/reply correlation shared by both relay hops.

One ``RequestCorrelator`` runs per hop (client ↔ relay and relay ↔ backend).
It owns the waiter table: every outbound request is registered under a
correlation id, and every inbound frame is offered to the table before the
hop treats it as an unsolicited notification.

Completion is first-wins. A request ends on the first of:
- a reply with the same id (``resolve``/``reject``/``dispatch``)
- its deadline timer firing (``RequestTimeout``)
- the hop's connection dropping (``fail_all`` → ``TransportError``)

Anything arriving after that is a no-op. All table operations are
synchronous, so they are atomic with respect to the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .errors import MalformedReply, RequestTimeout, TransportError

logger = logging.getLogger(__name__)

RequestId = str | int

# Best-effort id extraction from frames that are not valid JSON.
_ID_RE = re.compile(r'"id"\s*:\s*(?:"((?:[^"\\]|\\.)*)"|(-?\d+))')


@runtime_checkable
class Channel(Protocol):
    """The sending side of a hop, as seen by the correlator."""

    @property
    def is_open(self) -> bool:
        """True while frames can be sent."""
        ...

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send one frame.

        Raises:
            TransportError: If the frame could not be sent
        """
        ...


@dataclass
class PendingRequest:
    """One outstanding correlated call."""

    request_id: RequestId
    future: asyncio.Future[Any]
    created_at: float
    deadline: float
    timer: asyncio.TimerHandle | None = None

    @property
    def done(self) -> bool:
        return self.future.done()


class RequestCorrelator:
    """Waiter table keyed by correlation id, with per-request deadlines."""

    def __init__(
        self,
        hop: str,
        *,
        id_format: Callable[[int], RequestId] | None = None,
        validator: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        """Create a correlator.

        Args:
            hop: Name used in logs and error messages ("upstream", "client")
            id_format: Maps the internal counter to a wire id (default: the int itself)
            validator: Called on every claimed reply; a ``ValueError`` turns the
                       reply into a ``MalformedReply`` for its waiter
        """
        self.hop = hop
        self._counter = itertools.count(1)
        self._id_format = id_format or (lambda n: n)
        self._validator = validator
        self._pending: dict[RequestId, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: RequestId) -> bool:
        return request_id in self._pending

    def next_id(self) -> RequestId:
        """Return an id that is not currently pending on this hop."""
        while True:
            request_id = self._id_format(next(self._counter))
            if request_id not in self._pending:
                return request_id

    async def issue(
        self,
        channel: Channel,
        request_id: RequestId,
        payload: dict[str, Any],
        timeout: float,
    ) -> Any:
        """Send ``payload`` and wait for the reply bearing ``request_id``.

        Args:
            channel: The hop's connection
            request_id: Correlation id embedded in ``payload``
            payload: The frame to send
            timeout: Seconds to wait for the reply

        Returns:
            The reply frame (a parsed JSON object)

        Raises:
            TransportError: If the channel is closed, or drops before the reply
            RequestTimeout: If the deadline elapses first
            MalformedReply: If the reply claims this id but cannot be used
        """
        if not channel.is_open:
            raise TransportError(f"{self.hop} connection is not open")
        if request_id in self._pending:
            raise ValueError(f"Request id {request_id!r} is already pending on {self.hop} hop")

        loop = asyncio.get_running_loop()
        now = loop.time()
        pending = PendingRequest(
            request_id=request_id,
            future=loop.create_future(),
            created_at=now,
            deadline=now + timeout,
        )
        self._pending[request_id] = pending

        try:
            await channel.send_json(payload)
            if not pending.done:
                pending.timer = loop.call_later(timeout, self._expire, request_id, timeout)
            return await pending.future
        finally:
            self._discard(pending)

    def resolve(self, request_id: RequestId, reply: Any) -> bool:
        """Complete a pending request successfully.

        Returns:
            True if a waiter was resolved, False if none was pending
        """
        pending = self._take(request_id)
        if pending is None:
            logger.debug(f"Ignoring late reply for {request_id!r} on {self.hop} hop")
            return False
        pending.future.set_result(reply)
        return True

    def reject(self, request_id: RequestId, error: BaseException) -> bool:
        """Complete a pending request with an error.

        Returns:
            True if a waiter was failed, False if none was pending
        """
        pending = self._take(request_id)
        if pending is None:
            return False
        pending.future.set_exception(error)
        return True

    def fail_all(self, message: str) -> int:
        """Fail every pending request with ``TransportError(message)``.

        Returns:
            Number of requests failed
        """
        failed = 0
        for request_id in list(self._pending):
            if self.reject(request_id, TransportError(message)):
                failed += 1
        if failed:
            logger.info(f"Failed {failed} pending request(s) on {self.hop} hop: {message}")
        return failed

    def dispatch(self, raw: str | bytes) -> Any | None:
        """Offer an inbound frame to the waiter table.

        Returns:
            The parsed frame if no pending request claimed it, otherwise None.
            Frames that cannot be parsed are never returned: they fail the
            request they name, or are logged and dropped.
        """
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._handle_unparseable(raw, e)
            return None

        if message is None:
            logger.warning(f"Dropping null frame on {self.hop} hop")
            return None

        request_id = message.get("id") if isinstance(message, dict) else None
        if not isinstance(request_id, str | int) or request_id not in self._pending:
            return message

        if self._validator is not None:
            try:
                self._validator(message)
            except ValueError as e:
                self.reject(request_id, MalformedReply(request_id, f"Invalid reply: {e}"))
                return None

        self.resolve(request_id, message)
        return None

    def _handle_unparseable(self, raw: str | bytes, error: Exception) -> None:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        request_id = self._extract_pending_id(text)
        if request_id is not None:
            self.reject(request_id, MalformedReply(request_id, f"Unparseable reply: {error}"))
            return
        logger.warning(f"Dropping unparseable frame on {self.hop} hop: {error} ({text[:80]!r})")

    def _extract_pending_id(self, text: str) -> RequestId | None:
        match = _ID_RE.search(text)
        if match is None:
            return None
        token = match.group(1) if match.group(1) is not None else match.group(2)
        candidates: list[RequestId] = [token]
        if match.group(2) is not None:
            candidates.insert(0, int(token))
        for candidate in candidates:
            if candidate in self._pending:
                return candidate
        return None

    def _expire(self, request_id: RequestId, timeout: float) -> None:
        pending = self._take(request_id)
        if pending is None:
            return
        logger.warning(f"Request {request_id!r} on {self.hop} hop timed out after {timeout:g}s")
        pending.future.set_exception(RequestTimeout(request_id, timeout))

    def _take(self, request_id: RequestId) -> PendingRequest | None:
        """Remove a still-unresolved entry from the table."""
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return None
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.done:
            return None
        return pending

    def _discard(self, pending: PendingRequest) -> None:
        if self._pending.get(pending.request_id) is pending:
            del self._pending[pending.request_id]
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.done:
            pending.future.cancel()
