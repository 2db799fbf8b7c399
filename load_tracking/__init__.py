"""
Live load tracking: telemetry ingest, ordered point history and realtime viewer updates.
"""

__version__ = "0.3.0"
