# load_tracking/shared/events/tracking_events.py
"""
Tracking domain events, published on load_tracking:{load_id}.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from load_tracking.shared.events.base import DomainEvent
from load_tracking.shared.models.tracking import TrackingPoint


class TrackingPointInserted(DomainEvent):
    """Event: a tracking point was appended to a load."""

    event_type: Literal["tracking.point_inserted"] = "tracking.point_inserted"

    load_id: UUID
    point: TrackingPoint
