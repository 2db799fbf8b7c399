# load_tracking/shared/models/__init__.py
"""
Pydantic DTOs exchanged between services and the viewer.
"""

from load_tracking.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    ValidationIssue,
)
from load_tracking.shared.models.tracking import (
    IngestPayload,
    LoadSummary,
    ManualTrackingUpdate,
    OperatorContext,
    PointDraft,
    TrackingPoint,
    TrackingSnapshot,
    parse_ingest_payload,
    parse_manual_update,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthStatus",
    "ValidationIssue",
    # Tracking
    "IngestPayload",
    "LoadSummary",
    "ManualTrackingUpdate",
    "OperatorContext",
    "PointDraft",
    "TrackingPoint",
    "TrackingSnapshot",
    "parse_ingest_payload",
    "parse_manual_update",
]
