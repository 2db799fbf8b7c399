# load_tracking/shared/__init__.py
"""Models and events shared between the tracking services and the viewer."""
