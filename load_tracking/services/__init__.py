# load_tracking/services/__init__.py
"""
Deployable services:
- tracking: telemetry ingest, tracking query and operator updates
- realtime_ws: WebSocket gateway fed by Redis Pub/Sub
"""
