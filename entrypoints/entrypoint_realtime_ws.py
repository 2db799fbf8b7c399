#!/usr/bin/env python3
"""
Entrypoint for the Realtime WebSocket Gateway.

Run:
    python entrypoint_realtime_ws.py

Default port: 8089
"""

import sys
from pathlib import Path

# Project root on sys.path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from load_tracking.config import settings


def main() -> None:
    """Run the Realtime WebSocket Gateway."""
    uvicorn.run(
        "load_tracking.services.realtime_ws.app:app",
        host="0.0.0.0",
        port=settings.deployment.REALTIME_WS_GATEWAY_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
