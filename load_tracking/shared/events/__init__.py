# load_tracking/shared/events/__init__.py
"""
Domain events carried over Redis Pub/Sub.

Every event has metadata.event_id for deduplication.
"""

from load_tracking.shared.events.base import DomainEvent, EventMetadata
from load_tracking.shared.events.tracking_events import TrackingPointInserted

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "TrackingPointInserted",
]
