#!/usr/bin/env python3
# entrypoint_web_client.py
"""
Entrypoint for the Web Client (live tracking pages) in a Docker container.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Project root on sys.path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from load_tracking.config import settings
from load_tracking.web_client.app import run_web_client


if __name__ in {"__main__", "__mp_main__"}:
    instance_id = os.getenv("WEB_CLIENT_INSTANCE_ID", "0")
    print(f"Starting Web Client instance #{instance_id}")

    try:
        # NiceGUI runs its own event loop
        run_web_client(port=settings.deployment.WEB_CLIENT_PORT)
    except KeyboardInterrupt:
        pass
