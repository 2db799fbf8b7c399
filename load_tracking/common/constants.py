# load_tracking/common/constants.py
"""
Shared constants and enumerations.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Log message levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LoadStatus(str, Enum):
    """Lifecycle state of a load (shipment)."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class OperatorRole(str, Enum):
    """Roles forwarded by the session provider."""
    ADMIN = "admin"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"

    def __str__(self) -> str:
        return self.value


# Redis Pub/Sub channel for point inserts of one load: load_tracking:{load_id}
LOAD_TRACKING_CHANNEL_PREFIX = "load_tracking:"

# Field limits
LOCATION_MAX_LENGTH = 255
NOTES_MAX_LENGTH = 512
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


def tracking_channel(load_id: object) -> str:
    """Pub/Sub channel name for a load."""
    return f"{LOAD_TRACKING_CHANNEL_PREFIX}{load_id}"
