from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from tablehold.api.ws.manager import ConnectionManager
from tablehold.api.ws.routes import is_subscribable_topic
from tablehold.infrastructure.messaging.redis_event_listener import dispatch_message, parse_channel


class FakeWebSocket:
    def __init__(self, broken: bool = False) -> None:
        self.accepted = False
        self.sent: list[str] = []
        self.broken = broken

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, message: str) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_parse_channel() -> None:
    assert parse_channel("events:rst_001:kitchen") == ("rst_001", "kitchen")
    assert parse_channel("events:all:admin") == ("all", "admin")
    assert parse_channel("other:rst_001:kitchen") is None
    assert parse_channel("events:rst_001") is None


def test_subscribable_topics() -> None:
    assert is_subscribable_topic("kitchen")
    assert is_subscribable_topic("admin")
    assert is_subscribable_topic("table-tbl_001")
    assert not is_subscribable_topic("table-")
    assert not is_subscribable_topic("payments")


def test_broadcast_reaches_matching_subscribers_only() -> None:
    manager = ConnectionManager()
    kitchen = FakeWebSocket()
    admin = FakeWebSocket()
    elsewhere = FakeWebSocket()

    async def scenario() -> None:
        await manager.register(kitchen, "rst_001", "kitchen")
        await manager.register(admin, "rst_001", "admin")
        await manager.register(elsewhere, "rst_002", "kitchen")
        await manager.broadcast("rst_001", "kitchen", '{"event_type":"new-order"}')

    asyncio.run(scenario())

    assert kitchen.accepted is True
    assert kitchen.sent == ['{"event_type":"new-order"}']
    assert admin.sent == []
    assert elsewhere.sent == []


def test_all_restaurants_broadcast_fans_out_by_topic() -> None:
    manager = ConnectionManager()
    first = FakeWebSocket()
    second = FakeWebSocket()
    kitchen = FakeWebSocket()

    async def scenario() -> None:
        await manager.register(first, "rst_001", "admin")
        await manager.register(second, "rst_002", "admin")
        await manager.register(kitchen, "rst_001", "kitchen")
        await manager.broadcast("all", "admin", "{}")

    asyncio.run(scenario())

    assert first.sent == ["{}"]
    assert second.sent == ["{}"]
    assert kitchen.sent == []


def test_broken_sockets_are_dropped() -> None:
    manager = ConnectionManager()
    healthy = FakeWebSocket()
    broken = FakeWebSocket(broken=True)

    async def scenario() -> None:
        await manager.register(healthy, "rst_001", "kitchen")
        await manager.register(broken, "rst_001", "kitchen")
        assert manager.subscriber_count("rst_001", "kitchen") == 2
        await manager.broadcast("rst_001", "kitchen", "{}")

    asyncio.run(scenario())

    assert manager.subscriber_count("rst_001", "kitchen") == 1
    assert healthy.sent == ["{}"]


def test_pubsub_message_is_forwarded_to_subscribers() -> None:
    manager = ConnectionManager()
    kitchen = FakeWebSocket()

    async def scenario() -> tuple[bool, bool]:
        await manager.register(kitchen, "rst_001", "kitchen")
        forwarded = await dispatch_message(
            manager,
            {"type": "pmessage", "channel": b"events:rst_001:kitchen", "data": b'{"n":1}'},
        )
        dropped = await dispatch_message(
            manager,
            {"type": "pmessage", "channel": b"orders:rst_001", "data": b'{"n":2}'},
        )
        return forwarded, dropped

    forwarded, dropped = asyncio.run(scenario())

    assert forwarded is True
    assert dropped is False
    assert kitchen.sent == ['{"n":1}']
