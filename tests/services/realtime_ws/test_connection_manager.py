# tests/services/realtime_ws/test_connection_manager.py
"""
Tests for ConnectionManager.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from load_tracking.services.realtime_ws.connection_manager import ConnectionManager

from tests.conftest import FakeHandle


@pytest.fixture
def websocket() -> MagicMock:
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_connect_accepts(self, websocket, load_id) -> None:
        manager = ConnectionManager()

        connection_id = await manager.connect(websocket, load_id)

        websocket.accept.assert_awaited_once()
        assert manager.active_connections == 1
        assert manager.get_connection(connection_id).load_id == load_id

    @pytest.mark.asyncio
    async def test_disconnect_unsubscribes_handles(self, websocket, load_id) -> None:
        manager = ConnectionManager()
        connection_id = await manager.connect(websocket, load_id)
        handle = FakeHandle()
        manager.attach(connection_id, handle)

        await manager.disconnect(connection_id)
        await manager.disconnect(connection_id)

        assert handle.unsubscribe_calls == 1
        assert manager.active_connections == 0

    def test_attach_to_unknown_connection_drops_handle(self) -> None:
        manager = ConnectionManager()
        handle = FakeHandle()

        manager.attach("missing", handle)

        assert handle.unsubscribe_calls == 1

    @pytest.mark.asyncio
    async def test_send_personal(self, websocket, load_id) -> None:
        manager = ConnectionManager()
        connection_id = await manager.connect(websocket, load_id)

        assert await manager.send_personal(connection_id, {"type": "pong"})

        websocket.send_json.assert_awaited_once_with({"type": "pong"})
        assert manager.get_stats()["total_messages_sent"] == 1

    @pytest.mark.asyncio
    async def test_send_to_broken_socket_disconnects(self, websocket, load_id) -> None:
        manager = ConnectionManager()
        connection_id = await manager.connect(websocket, load_id)
        handle = FakeHandle()
        manager.attach(connection_id, handle)
        websocket.send_json.side_effect = RuntimeError("socket closed")

        assert not await manager.send_personal(connection_id, {"type": "pong"})

        assert manager.active_connections == 0
        assert handle.unsubscribe_calls == 1

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self) -> None:
        assert not await ConnectionManager().send_personal("missing", {"type": "pong"})

    @pytest.mark.asyncio
    async def test_stats_by_load(self, load_id) -> None:
        manager = ConnectionManager()
        for _ in range(2):
            ws = MagicMock()
            ws.accept = AsyncMock()
            await manager.connect(ws, load_id)

        stats = manager.get_stats()

        assert stats["connections_by_load"] == {str(load_id): 2}
        assert stats["total_connections_ever"] == 2
