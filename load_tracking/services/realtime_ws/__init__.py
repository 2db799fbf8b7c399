# load_tracking/services/realtime_ws/__init__.py
"""
Realtime WebSocket Gateway.

Fans tracking inserts out from Redis Pub/Sub to viewers over WebSocket.
"""
