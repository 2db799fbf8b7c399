# load_tracking/services/realtime_ws/app.py
"""
FastAPI application for the Realtime WebSocket Gateway.

WebSocket endpoints:
- /ws/tracking/{load_id} - live tracking inserts for one load

Server -> client messages:
- {"type": "subscribed", "load_id": ...}
- {"type": "tracking_insert", "load_id": ..., "point": {...}}
- {"type": "resync", "load_id": ...}  refetch the full history
- {"type": "error", "message": ...}
- {"type": "pong"}

Client -> server messages:
- {"action": "ping"}

REST endpoints:
- GET /health - health check
- GET /stats - connection statistics
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from load_tracking import __version__
from load_tracking.common.logger import log_info, setup_logging
from load_tracking.config import get_settings
from load_tracking.config.loader import Settings
from load_tracking.infra.redis_client import RedisClient
from load_tracking.services.realtime_ws.channel import LiveUpdateChannel
from load_tracking.services.realtime_ws.connection_manager import ConnectionManager
from load_tracking.shared.models.common import HealthStatus
from load_tracking.shared.models.tracking import TrackingPoint


SERVICE_NAME = "realtime_ws_gateway"

# Policy violation: malformed load id
WS_CLOSE_INVALID_LOAD = 1008


# === MODELS ===

class StatsResponse(BaseModel):
    """Connection and channel statistics."""
    active_connections: int
    total_connections_ever: int
    total_messages_sent: int
    connections_by_load: dict[str, int]
    channel: dict[str, Any]


# === CLIENT MESSAGES ===

async def _handle_client_message(manager: ConnectionManager, connection_id: str, raw: str) -> None:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        await manager.send_personal(connection_id, {"type": "error", "message": "Invalid message"})
        return

    action = data.get("action") if isinstance(data, dict) else None

    if action == "ping":
        await manager.send_personal(connection_id, {"type": "pong"})
    else:
        await manager.send_personal(connection_id, {"type": "error", "message": f"Unknown action: {action}"})


# === APP ===

def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the gateway.

    The Redis client and the live update channel are created in the lifespan;
    tests may put their own channel on app.state.
    """
    app_settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()

        redis = RedisClient()
        await redis.connect(
            url=app_settings.redis.url,
            max_connections=app_settings.redis.REDIS_MAX_CONNECTIONS,
        )
        channel = LiveUpdateChannel(redis, app_settings.realtime)
        await channel.start()

        app.state.redis = redis
        app.state.channel = channel
        await log_info(f"{SERVICE_NAME} started")

        yield

        await channel.stop()
        await redis.disconnect()
        await log_info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="Realtime WebSocket Gateway",
        description="Live tracking updates for load viewers.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = app_settings
    app.state.manager = ConnectionManager()

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        dependencies: dict[str, str] = {}
        redis: RedisClient | None = getattr(request.app.state, "redis", None)
        if redis is not None:
            dependencies["redis"] = "healthy" if await redis.health_check() else "unhealthy"

        status = "healthy" if all(v == "healthy" for v in dependencies.values()) else "degraded"
        return HealthStatus(
            service=SERVICE_NAME,
            status=status,
            version=__version__,
            dependencies=dependencies,
        )

    # === STATS ===

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats(request: Request) -> StatsResponse:
        manager: ConnectionManager = request.app.state.manager
        channel: LiveUpdateChannel | None = getattr(request.app.state, "channel", None)
        return StatsResponse(
            **manager.get_stats(),
            channel=channel.get_stats() if channel is not None else {},
        )

    # === WEBSOCKET ===

    @app.websocket("/ws/tracking/{load_id}")
    async def websocket_tracking(websocket: WebSocket, load_id: str) -> None:
        """
        Live inserts for one load.

        Viewer authorization is enforced by the upstream session layer.
        """
        try:
            load_uuid = UUID(load_id)
        except ValueError:
            # Accept first so the client sees the close code instead of a failed handshake
            await websocket.accept()
            await websocket.close(code=WS_CLOSE_INVALID_LOAD)
            return

        manager: ConnectionManager = websocket.app.state.manager
        channel: LiveUpdateChannel = websocket.app.state.channel

        connection_id = await manager.connect(websocket, load_uuid)

        async def on_insert(point: TrackingPoint) -> None:
            await manager.send_personal(connection_id, {
                "type": "tracking_insert",
                "load_id": str(load_uuid),
                "point": point.to_event(),
            })

        async def on_resync() -> None:
            await manager.send_personal(connection_id, {"type": "resync", "load_id": str(load_uuid)})

        async def on_error(error: Exception) -> None:
            await manager.send_personal(connection_id, {"type": "error", "message": str(error)})

        try:
            handle = await channel.subscribe(load_uuid, on_insert, on_resync=on_resync, on_error=on_error)
            manager.attach(connection_id, handle)
            await manager.send_personal(connection_id, {"type": "subscribed", "load_id": str(load_uuid)})

            while True:
                raw = await websocket.receive_text()
                await _handle_client_message(manager, connection_id, raw)

        except WebSocketDisconnect:
            pass
        finally:
            await manager.disconnect(connection_id)

    return app


app = create_app()
