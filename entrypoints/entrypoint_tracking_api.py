#!/usr/bin/env python3
"""
Entrypoint for the Tracking API.

Run:
    python entrypoint_tracking_api.py

Default port: 8092
"""

import sys
from pathlib import Path

# Project root on sys.path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from load_tracking.config import settings


def main() -> None:
    """Run the Tracking API."""
    uvicorn.run(
        "load_tracking.services.tracking.app:app",
        host="0.0.0.0",
        port=settings.deployment.TRACKING_API_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
