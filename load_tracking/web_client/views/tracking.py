# load_tracking/web_client/views/tracking.py
"""
Live tracking page for one load.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from nicegui import Client, ui

from load_tracking.common.logger import log_debug
from load_tracking.config import settings
from load_tracking.web_client.components.route_map import RouteMapComponent
from load_tracking.web_client.infra.api_clients import TrackingClient
from load_tracking.web_client.infra.live_client import RemoteLiveChannel
from load_tracking.web_client.route_renderer import build_route_view, build_timeline, status_label
from load_tracking.web_client.sync import SyncPhase, TrackingState, TrackingSynchronizer


class TrackingView:
    """Header, route map and activity timeline driven by a TrackingSynchronizer."""

    def __init__(self, map_token: Optional[str]) -> None:
        self.map_token = map_token
        self.route_map = RouteMapComponent(map_token)
        self.title_label: Optional[ui.label] = None
        self.status_label: Optional[ui.label] = None
        self.live_badge: Optional[ui.badge] = None
        self.error_label: Optional[ui.label] = None
        self.spinner: Optional[ui.element] = None
        self.caption_label: Optional[ui.label] = None
        self.timeline_container: Optional[ui.column] = None

    def build(self, state: TrackingState) -> None:
        with ui.column().classes("w-full max-w-4xl mx-auto p-4 gap-4"):
            with ui.card().classes("w-full p-4"):
                with ui.row().classes("w-full items-center justify-between"):
                    self.title_label = ui.label("Load").classes("text-2xl font-bold")
                    self.live_badge = ui.badge("Offline", color="grey")
                with ui.row().classes("items-center gap-2"):
                    self.status_label = ui.label("").classes("text-lg text-gray-700")
                    self.spinner = ui.spinner(size="sm")
                self.error_label = ui.label("").classes("text-red-600")

            self.route_map.render(build_route_view(state.points, self.map_token))

            with ui.card().classes("w-full p-4"):
                ui.label("Activity").classes("text-xl font-bold")
                self.caption_label = ui.label("").classes("text-sm text-gray-500")
                self.timeline_container = ui.column().classes("w-full gap-2")

        self.update(state)

    def update(self, state: TrackingState) -> None:
        if state.phase == SyncPhase.CLOSED:
            return

        if state.summary is not None:
            self.title_label.set_text(f"Load {state.summary.load_number}")
            self.status_label.set_text(f"Status: {status_label(state.summary.status)}")
        self.spinner.set_visibility(state.loading or state.phase == SyncPhase.RESYNCHRONIZING)

        self.live_badge.set_text("Live" if state.live else "Offline")
        self.live_badge.props(f"color={'positive' if state.live else 'grey'}")

        # Stale data stays on screen under the error
        self.error_label.set_text(state.error or "")
        self.error_label.set_visibility(bool(state.error))

        self.route_map.update(build_route_view(state.points, self.map_token))
        self._render_timeline(state)

    def _render_timeline(self, state: TrackingState) -> None:
        timeline = build_timeline(state.points)
        self.caption_label.set_text(timeline.caption)

        self.timeline_container.clear()
        with self.timeline_container:
            for entry in timeline.entries:
                with ui.row().classes("w-full items-start gap-3"):
                    ui.icon("radio_button_checked" if entry.is_latest else "circle", size="sm").classes(
                        "text-green-600" if entry.is_latest else "text-gray-400"
                    )
                    with ui.column().classes("gap-0"):
                        ui.label(entry.label.capitalize()).classes("font-semibold")
                        if entry.location:
                            ui.label(entry.location).classes("text-gray-700")
                        if entry.notes:
                            ui.label(entry.notes).classes("text-gray-500 text-sm")
                        ui.label(f"{entry.created_at:%Y-%m-%d %H:%M} UTC").classes("text-xs text-gray-400")


@ui.page("/loads/{load_id}/track")
async def tracking_page(load_id: str, client: Client) -> None:
    """Live tracking page for a load."""
    try:
        load_uuid = UUID(load_id)
    except ValueError:
        ui.label("Invalid load id").classes("text-xl text-red-600 p-4")
        return

    await client.connected()

    api = TrackingClient()
    synchronizer = TrackingSynchronizer(load_uuid, api, RemoteLiveChannel())
    view = TrackingView(settings.google_maps.GOOGLE_MAPS_API_KEY)
    view.build(synchronizer.state)
    synchronizer.on_change(view.update)

    async def teardown() -> None:
        synchronizer.close()
        await api.close()
        await log_debug(f"Tracking page for load {load_uuid} closed")

    client.on_disconnect(teardown)

    await synchronizer.start()
