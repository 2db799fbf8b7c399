"""Viewer-side components: API clients, state synchronizer, route derivation and NiceGUI pages."""
