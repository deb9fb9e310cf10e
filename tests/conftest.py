"""Pytest configuration and shared fixtures.

Outbound WebSocket peers are replaced by ``FakeSocket`` objects handed out
by a ``FakeConnector``; both mimic the small part of the ``websockets``
client API the relay uses (``send``, ``close``, async iteration).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest


class FakeSocket:
    """In-memory stand-in for a ``websockets`` client connection."""

    def __init__(self, responder: Callable[[dict[str, Any]], Any] | None = None):
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.responder = responder
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise OSError("socket closed")
        message = json.loads(data)
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(message)
            if reply is not None:
                self.push(reply)

    def push(self, frame: Any) -> None:
        """Queue an inbound frame (dicts are JSON-encoded, strings sent raw)."""
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the peer closing the connection."""
        self.closed = True
        self._inbox.put_nowait(None)

    async def close(self) -> None:
        if not self.closed:
            self.drop()

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Returns queued sockets (or raises queued errors) on each connect."""

    def __init__(self, *outcomes: FakeSocket | BaseException):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.calls.append(url)
        if not self.outcomes:
            raise OSError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_socket() -> type[FakeSocket]:
    return FakeSocket


@pytest.fixture
def fake_connector() -> type[FakeConnector]:
    return FakeConnector


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll ``predicate`` on the event loop until it holds."""
    return _wait_until
