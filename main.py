#!/usr/bin/env python3
# main.py
"""
Main entry point of the load tracking components.
Starts the Tracking API, the Realtime WebSocket Gateway or the Web Client
depending on the argument (or COMPONENT_MODE).
"""

from __future__ import annotations

import asyncio
import signal
import sys

from load_tracking.common.constants import TypeMsg
from load_tracking.common.logger import log_error, log_info, setup_logging
from load_tracking.config import settings


VALID_MODES = ("tracking_api", "realtime_ws", "web_client", "services")

_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Cancel running components on SIGINT/SIGTERM."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nStop signal received (sig={sig}), shutting down...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows has no add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def _serve(app_path: str, port: int, name: str) -> None:
    import uvicorn

    await log_info(f"Starting {name} on port {port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_path,
        host="0.0.0.0",
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info(f"{name}: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()
        raise


async def run_tracking_api() -> None:
    """Tracking API: ingest, query and manual updates."""
    await _serve(
        "load_tracking.services.tracking.app:app",
        settings.deployment.TRACKING_API_PORT,
        "Tracking API",
    )


async def run_realtime_ws_gateway() -> None:
    """Realtime WebSocket Gateway: live inserts for viewers."""
    await _serve(
        "load_tracking.services.realtime_ws.app:app",
        settings.deployment.REALTIME_WS_GATEWAY_PORT,
        "Realtime WebSocket Gateway",
    )


async def main(mode: str) -> None:
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"Load tracking v{settings.system.VERSION} starting in '{mode}' mode",
        type_msg=TypeMsg.INFO,
    )

    if mode == "tracking_api":
        _running_tasks = [asyncio.create_task(run_tracking_api())]
    elif mode == "realtime_ws":
        _running_tasks = [asyncio.create_task(run_realtime_ws_gateway())]
    elif mode == "services":
        _running_tasks = [
            asyncio.create_task(run_tracking_api()),
            asyncio.create_task(run_realtime_ws_gateway()),
        ]
    else:
        await log_error(f"Unknown mode: {mode}")
        return

    try:
        await asyncio.gather(*_running_tasks, return_exceptions=True)
    except asyncio.CancelledError:
        await log_info("Cancelling services...", type_msg=TypeMsg.INFO)
    finally:
        for task in _running_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*_running_tasks, return_exceptions=True)
        _running_tasks.clear()
        await log_info("Stopped", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    print("""
Load tracking

Usage:
    python main.py [mode]

Modes:
    tracking_api     Tracking API (:8092)
    realtime_ws      Realtime WebSocket Gateway (:8089)
    web_client       Web Client UI (:8082), runs its own event loop
    services         Tracking API + Realtime WebSocket Gateway

COMPONENT_MODE is used when no mode is given.
    """)


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else settings.system.COMPONENT_MODE

    if mode in ("-h", "--help", "help") or mode not in VALID_MODES:
        print_usage()
        sys.exit(0 if mode in ("-h", "--help", "help") else 1)

    if mode == "web_client":
        # NiceGUI owns the event loop
        from load_tracking.web_client.app import run_web_client

        run_web_client(port=settings.deployment.WEB_CLIENT_PORT)
    else:
        try:
            asyncio.run(main(mode))
        except KeyboardInterrupt:
            pass
