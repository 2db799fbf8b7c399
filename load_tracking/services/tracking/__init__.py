# load_tracking/services/tracking/__init__.py
"""Tracking API: ingest, query and manual operator updates."""
