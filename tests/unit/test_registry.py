"""Unit tests for the client registry."""

import pytest

from blender_relay.protocol.envelopes import Envelope
from blender_relay.registry import ClientRegistry


class FakeConnection:
    def __init__(self, connection_id, is_open=True, fail=False):
        self.id = connection_id
        self.is_open = is_open
        self.fail = fail
        self.received = []

    async def send(self, envelope):
        if self.fail:
            raise RuntimeError("socket exploded")
        if not self.is_open:
            return False
        self.received.append(envelope)
        return True


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_sends_connectivity_snapshot(self):
        registry = ClientRegistry(upstream_connected=lambda: True)
        conn = FakeConnection("c1")

        assert await registry.register(conn) == "c1"

        assert registry.count == 1
        assert len(conn.received) == 1
        assert conn.received[0].type == "connection_status"
        assert conn.received[0].connected is True

    @pytest.mark.asyncio
    async def test_snapshot_defaults_to_disconnected(self):
        registry = ClientRegistry()
        conn = FakeConnection("c1")

        await registry.register(conn)

        assert conn.received[0].connected is False

    @pytest.mark.asyncio
    async def test_bind_status(self):
        registry = ClientRegistry()
        registry.bind_status(lambda: True)
        conn = FakeConnection("c1")

        await registry.register(conn)

        assert conn.received[0].connected is True

    @pytest.mark.asyncio
    async def test_unregister(self):
        registry = ClientRegistry()
        await registry.register(FakeConnection("c1"))

        await registry.unregister("c1")
        await registry.unregister("unknown")

        assert registry.count == 0


class TestDelivery:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_open_clients_only(self):
        registry = ClientRegistry()
        a, b, closed = FakeConnection("a"), FakeConnection("b"), FakeConnection("c")
        for conn in (a, b, closed):
            await registry.register(conn)
        closed.is_open = False

        delivered = await registry.broadcast(Envelope.status("hello"))

        assert delivered == 2
        assert a.received[-1].message == "hello"
        assert b.received[-1].message == "hello"
        assert len(closed.received) == 1

    @pytest.mark.asyncio
    async def test_broadcast_survives_failing_client(self):
        registry = ClientRegistry()
        good, bad = FakeConnection("good"), FakeConnection("bad")
        await registry.register(good)
        await registry.register(bad)
        bad.fail = True

        delivered = await registry.broadcast(Envelope.status("still here"))

        assert delivered == 1
        assert good.received[-1].message == "still here"

    @pytest.mark.asyncio
    async def test_route_to_one(self):
        registry = ClientRegistry()
        a, b = FakeConnection("a"), FakeConnection("b")
        await registry.register(a)
        await registry.register(b)

        assert await registry.route_to_one("a", Envelope.success("1", {"ok": True})) is True

        assert a.received[-1].type == "success"
        assert len(b.received) == 1

    @pytest.mark.asyncio
    async def test_route_to_departed_client_dropped(self):
        registry = ClientRegistry()
        a = FakeConnection("a")
        await registry.register(a)
        await registry.unregister("a")

        assert await registry.route_to_one("a", Envelope.success("1", None)) is False
        assert await registry.route_to_one("never", Envelope.success("1", None)) is False
        assert len(a.received) == 1
