# load_tracking/web_client/views/__init__.py
"""
Views for the viewer web interface.
"""

from . import tracking

__all__ = ["tracking"]
