# load_tracking/services/realtime_ws/connection_manager.py
"""
WebSocket connection manager.
Tracks viewer connections and the channel subscriptions each one holds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from fastapi import WebSocket

from load_tracking.common.logger import log_debug
from load_tracking.services.realtime_ws.channel import SubscriptionHandle


@dataclass
class ConnectionInfo:
    """One viewer connection."""
    websocket: WebSocket
    connection_id: str
    load_id: UUID
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    handles: list[SubscriptionHandle] = field(default_factory=list)


class ConnectionManager:
    """
    WebSocket connection manager.

    Supports:
    - connecting and disconnecting viewers
    - attaching channel subscriptions to a connection
    - personal messages
    Disconnecting unsubscribes every handle the connection holds.
    """

    def __init__(self) -> None:
        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}

        self._total_connections: int = 0
        self._total_messages_sent: int = 0

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, load_id: UUID) -> str:
        """
        Accept a viewer connection.

        Returns:
            Connection id
        """
        await websocket.accept()

        connection_id = uuid4().hex
        self._connections[connection_id] = ConnectionInfo(
            websocket=websocket,
            connection_id=connection_id,
            load_id=load_id,
        )
        self._total_connections += 1
        return connection_id

    def attach(self, connection_id: str, handle: SubscriptionHandle) -> None:
        """Tie a subscription to a connection. Unknown connections drop the handle."""
        conn = self._connections.get(connection_id)
        if conn is None:
            handle.unsubscribe()
            return
        conn.handles.append(handle)

    async def disconnect(self, connection_id: str) -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return

        for handle in conn.handles:
            handle.unsubscribe()
        conn.handles.clear()

        await log_debug(f"Viewer connection {connection_id} for load {conn.load_id} closed")

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Send a message to one connection.

        Returns:
            True if sent, False if the connection is gone
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        try:
            await conn.websocket.send_json(message)
            self._total_messages_sent += 1
            return True
        except Exception:
            # Connection broken
            await self.disconnect(connection_id)
            return False

    def get_connection(self, connection_id: str) -> ConnectionInfo | None:
        return self._connections.get(connection_id)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "connections_by_load": self._count_by_load(),
        }

    def _count_by_load(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for conn in self._connections.values():
            key = str(conn.load_id)
            counts[key] = counts.get(key, 0) + 1
        return counts
