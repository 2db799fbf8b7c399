# load_tracking/config/__init__.py
"""
Configuration package.
Exports application settings.
"""

from load_tracking.config.loader import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
