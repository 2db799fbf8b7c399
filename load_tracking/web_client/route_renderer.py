# load_tracking/web_client/route_renderer.py
"""
Route and breadcrumb derivation for the tracking map.

Pure functions over an ordered point list: no I/O, no UI. The map component
draws whatever RouteView says.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from load_tracking.shared.models.tracking import TrackingPoint


EMPTY_ROUTE_MESSAGE = "No tracking coordinates available yet."
UNCONFIGURED_MAP_MESSAGE = "Map is not configured."
AWAITING_FIRST_PING = "Awaiting first GPS ping"

# Johannesburg; shown until the first fix arrives
DEFAULT_CENTER: tuple[float, float] = (-26.2041, 28.0473)
DEFAULT_ZOOM = 4.5
FOCUSED_ZOOM = 8


class RouteViewState(str, Enum):
    UNCONFIGURED = "unconfigured"
    EMPTY = "empty"
    READY = "ready"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RouteMarker:
    latitude: float
    longitude: float
    status: str
    created_at: datetime
    point_id: str
    location: Optional[str] = None
    is_current: bool = False

    @property
    def title(self) -> str:
        label = status_label(self.status)
        return f"{label} - {self.location}" if self.location else label


@dataclass(frozen=True)
class RouteView:
    state: RouteViewState
    path: tuple[tuple[float, float], ...] = ()
    markers: tuple[RouteMarker, ...] = ()
    center: tuple[float, float] = DEFAULT_CENTER
    zoom: float = DEFAULT_ZOOM
    message: Optional[str] = None

    @property
    def has_route(self) -> bool:
        return len(self.path) >= 2

    @property
    def current(self) -> Optional[RouteMarker]:
        for marker in self.markers:
            if marker.is_current:
                return marker
        return None

    def to_geojson(self) -> dict[str, Any]:
        """FeatureCollection with the route LineString and one Point per breadcrumb (GeoJSON is lng, lat)."""
        features: list[dict[str, Any]] = []
        if self.has_route:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[lng, lat] for lat, lng in self.path],
                },
                "properties": {"kind": "route"},
            })
        for marker in self.markers:
            features.append({
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [marker.longitude, marker.latitude]},
                "properties": {
                    "kind": "breadcrumb",
                    "id": marker.point_id,
                    "status": marker.status,
                    "createdAt": marker.created_at.isoformat(),
                    "current": marker.is_current,
                },
            })
        return {"type": "FeatureCollection", "features": features}


@dataclass(frozen=True)
class TimelineEntry:
    point_id: str
    status: str
    label: str
    created_at: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    has_coordinates: bool = False
    is_latest: bool = False


@dataclass(frozen=True)
class Timeline:
    entries: tuple[TimelineEntry, ...] = field(default_factory=tuple)
    caption: str = AWAITING_FIRST_PING


def status_label(status: Any) -> str:
    """in_transit -> 'in transit'."""
    return str(status).replace("_", " ")


def build_route_view(points: Iterable[TrackingPoint], map_token: Optional[str]) -> RouteView:
    """
    Derive the map view from points in chronological order.

    A missing map credential wins over everything else; zero points with
    coordinates gives the empty placeholder.
    """
    if not map_token:
        return RouteView(state=RouteViewState.UNCONFIGURED, message=UNCONFIGURED_MAP_MESSAGE)

    located = [p for p in points if p.latitude is not None and p.longitude is not None]
    if not located:
        return RouteView(state=RouteViewState.EMPTY, message=EMPTY_ROUTE_MESSAGE)

    last = len(located) - 1
    markers = tuple(
        RouteMarker(
            latitude=p.latitude,
            longitude=p.longitude,
            status=str(p.status),
            created_at=p.created_at,
            point_id=str(p.id),
            location=p.location,
            is_current=i == last,
        )
        for i, p in enumerate(located)
    )
    path = tuple((p.latitude, p.longitude) for p in located) if len(located) >= 2 else ()
    latest = located[-1]

    return RouteView(
        state=RouteViewState.READY,
        path=path,
        markers=markers,
        center=(latest.latitude, latest.longitude),
        zoom=FOCUSED_ZOOM,
    )


def build_timeline(points: Iterable[TrackingPoint]) -> Timeline:
    """Activity list, newest first."""
    ordered = list(points)
    if not ordered:
        return Timeline()

    entries = tuple(
        TimelineEntry(
            point_id=str(p.id),
            status=str(p.status),
            label=status_label(p.status),
            created_at=p.created_at,
            location=p.location,
            notes=p.notes,
            has_coordinates=p.has_coordinates,
            is_latest=i == 0,
        )
        for i, p in enumerate(reversed(ordered))
    )
    latest = entries[0].created_at
    return Timeline(entries=entries, caption=f"Last updated {latest:%Y-%m-%d %H:%M} UTC")
