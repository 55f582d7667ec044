"""
backend/tests/test_websocket_manager.py

Purpose:
    Realtime subscriber registry: filter matching across dates/categories/event
    types, connection cap, and dead-connection cleanup.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

sys.path.insert(0, "backend")

from footbet.services.websocket_manager import ConnectionLimitError, WebSocketManager


class _FakeWebSocket:
    def __init__(self, *, fail_send: bool = False):
        self.accepted = False
        self.fail_send = fail_send
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail_send:
            raise RuntimeError("send failed")
        self.messages.append(payload)


@pytest.mark.asyncio
async def test_broadcast_respects_every_filter_dimension():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    everything = _FakeWebSocket()
    vip_only = _FakeWebSocket()
    await manager.connect(everything)
    conn = await manager.connect(vip_only, user_id="u1", filters={"categories": ["fbw_special"]})
    filters = await manager.apply_command(conn, "subscribe", {"event_types": ["category.published"], "dates": "2025-03-01"})
    assert filters == {
        "dates": ["2025-03-01"],
        "categories": ["fbw_special"],
        "event_types": ["category.published"],
    }

    sent = await manager.broadcast("category.published", {"x": 1}, day="2025-03-01", category="fbw_special")
    assert sent == 2
    assert vip_only.messages[-1]["type"] == "category.published"
    assert vip_only.messages[-1]["data"] == {"x": 1}

    assert await manager.broadcast("category.generated", {}, day="2025-03-01", category="fbw_special") == 1
    assert await manager.broadcast("category.published", {}, day="2025-03-02", category="fbw_special") == 1
    assert await manager.broadcast("category.published", {}, day="2025-03-01", category="free_coupon") == 1
    assert len(vip_only.messages) == 1
    assert len(everything.messages) == 4


@pytest.mark.asyncio
async def test_unsubscribe_and_replace_commands():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    conn = await manager.connect(_FakeWebSocket(), filters={"categories": ["a", "b"]})

    assert (await manager.apply_command(conn, "unsubscribe", {"categories": ["a"]}))["categories"] == ["b"]
    replaced = await manager.apply_command(conn, "replace", {"dates": ["2025-03-01"]})
    assert replaced == {"dates": ["2025-03-01"], "categories": [], "event_types": []}
    with pytest.raises(ValueError):
        await manager.apply_command(conn, "explode", {})


@pytest.mark.asyncio
async def test_connection_cap():
    manager = WebSocketManager(max_connections=1, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket())
    rejected = _FakeWebSocket()
    with pytest.raises(ConnectionLimitError):
        await manager.connect(rejected)
    assert rejected.accepted is False


@pytest.mark.asyncio
async def test_failed_send_drops_connection():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket(fail_send=True))
    await manager.connect(_FakeWebSocket())

    assert await manager.broadcast("category.settled", {}, day="2025-03-01", category="free_coupon") == 1
    assert manager.stats()["active_connections"] == 1
    assert manager.stats()["dropped_connections"] == 1


@pytest.mark.asyncio
async def test_heartbeat_removes_dead_connections():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=1)
    await manager.connect(_FakeWebSocket())
    await manager.connect(_FakeWebSocket(fail_send=True))
    await manager.start()
    await asyncio.sleep(1.5)
    await manager.stop()
    assert manager.stats()["dropped_connections"] >= 1
