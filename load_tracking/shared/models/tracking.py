# load_tracking/shared/models/tracking.py
"""
Tracking DTOs.

Wire names are camelCase (loadId, loadNumber, createdAt); Python attributes
stay snake_case. Always dump with by_alias=True for HTTP and Pub/Sub payloads.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from load_tracking.common.constants import (
    LOCATION_MAX_LENGTH,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    NOTES_MAX_LENGTH,
    LoadStatus,
    OperatorRole,
)
from load_tracking.common.errors import InvalidPayload


COORDINATES_UNPAIRED = "coordinates_unpaired"
COORDINATES_UNPAIRED_MESSAGE = "latitude and longitude must be provided together"

# Calendar date first; rejects Unix epochs and other loosely parsed forms
_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _to_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coordinate_pairing_issue(latitude: Any, longitude: Any) -> dict[str, Any] | None:
    """Issue for a half-specified coordinate pair, or None when both or neither are set."""
    if (latitude is None) == (longitude is None):
        return None
    missing = "longitude" if longitude is None else "latitude"
    return {"path": [missing], "message": COORDINATES_UNPAIRED_MESSAGE, "code": COORDINATES_UNPAIRED}


class _CoordinatesMixin(BaseModel):
    """Optional coordinate pair with range checks; both set or both null."""

    latitude: float | None = Field(None, ge=MIN_LATITUDE, le=MAX_LATITUDE, description="Latitude")
    longitude: float | None = Field(None, ge=MIN_LONGITUDE, le=MAX_LONGITUDE, description="Longitude")

    @model_validator(mode="after")
    def check_coordinates_paired(self):
        if coordinate_pairing_issue(self.latitude, self.longitude) is not None:
            raise PydanticCustomError(COORDINATES_UNPAIRED, COORDINATES_UNPAIRED_MESSAGE)
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class _InboundCoordinatesMixin(_CoordinatesMixin):
    """Coordinates from clients must be JSON numbers; numeric strings are rejected."""

    latitude: StrictFloat | None = Field(None, ge=MIN_LATITUDE, le=MAX_LATITUDE, description="Latitude")
    longitude: StrictFloat | None = Field(None, ge=MIN_LONGITUDE, le=MAX_LONGITUDE, description="Longitude")


# =============================================================================
# STORED ENTITIES
# =============================================================================

class TrackingPoint(_CoordinatesMixin):
    """One telemetry or status report for a load. Immutable once stored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: UUID = Field(..., description="Assigned by the datastore")
    load_id: UUID | None = Field(None, description="Omitted in query payloads")
    status: LoadStatus
    location: str | None = Field(None, max_length=LOCATION_MAX_LENGTH)
    notes: str | None = Field(None, max_length=NOTES_MAX_LENGTH)
    created_at: datetime
    updated_by: UUID | None = Field(None, exclude=True)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return _to_utc(v)

    def to_public(self) -> dict[str, Any]:
        """Query payload shape: no loadId, no operator id."""
        return self.model_dump(mode="json", by_alias=True, exclude={"load_id"})

    def to_event(self) -> dict[str, Any]:
        """Live insert payload shape: includes loadId."""
        return self.model_dump(mode="json", by_alias=True)


class LoadSummary(BaseModel):
    """
    Shipment record projection.
    Sourced from the loads table, never derived from tracking points.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: UUID
    load_number: str
    # Externally owned record; not constrained to LoadStatus
    status: str
    company_id: UUID | None = Field(None, exclude=True)
    assigned_driver_id: UUID | None = Field(None, exclude=True)


class PointDraft(_CoordinatesMixin):
    """Validated point content waiting to be appended. The datastore assigns the id."""

    status: LoadStatus
    location: str | None = Field(None, max_length=LOCATION_MAX_LENGTH)
    notes: str | None = Field(None, max_length=NOTES_MAX_LENGTH)
    created_at: datetime | None = Field(None, description="Report time; insert time when None")
    updated_by: UUID | None = None


class TrackingSnapshot(BaseModel):
    """Load summary plus its points in ascending created_at order."""

    model_config = ConfigDict(frozen=True)

    summary: LoadSummary = Field(
        ...,
        serialization_alias="load",
        validation_alias=AliasChoices("summary", "load"),
    )
    points: list[TrackingPoint] = Field(
        default_factory=list,
        serialization_alias="tracking",
        validation_alias=AliasChoices("points", "tracking"),
    )

    def to_response(self) -> dict[str, Any]:
        return {
            "load": self.summary.model_dump(mode="json", by_alias=True),
            "tracking": [point.to_public() for point in self.points],
        }


# =============================================================================
# INBOUND PAYLOADS
# =============================================================================

class IngestPayload(_InboundCoordinatesMixin):
    """Telemetry report from a device or integration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    load_id: UUID
    status: LoadStatus
    location: str | None = Field(None, max_length=LOCATION_MAX_LENGTH)
    notes: str | None = Field(None, max_length=NOTES_MAX_LENGTH)
    timestamp: datetime | None = Field(None, description="Report time; ingest time when absent")

    @field_validator("timestamp", mode="before")
    @classmethod
    def require_iso_string(cls, v: Any) -> Any:
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, str) and _ISO_DATE_PREFIX.match(v):
            return v
        raise PydanticCustomError("iso_datetime", "Input should be an ISO-8601 datetime string")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        return _to_utc(v)


class ManualTrackingUpdate(_InboundCoordinatesMixin):
    """Update submitted by an operator from the dashboard."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    status: LoadStatus
    location: str | None = Field(None, max_length=LOCATION_MAX_LENGTH)
    notes: str | None = Field(None, max_length=NOTES_MAX_LENGTH)


class OperatorContext(BaseModel):
    """Caller identity forwarded by the session provider."""

    user_id: UUID
    company_id: UUID
    role: OperatorRole

    @property
    def is_driver(self) -> bool:
        return self.role == OperatorRole.DRIVER


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def validation_issues(error: ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into {path, message, code} entries."""
    return [
        {
            "path": list(err.get("loc", ())),
            "message": err.get("msg", ""),
            "code": err.get("type", "invalid"),
        }
        for err in error.errors()
    ]


def _parse(model: type[BaseModel], raw: Any) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        issues = [
            issue for issue in validation_issues(e)
            if issue["code"] != COORDINATES_UNPAIRED
        ]
        # Field errors stop the model validator; report the pairing rule anyway
        if isinstance(raw, dict):
            pairing = coordinate_pairing_issue(raw.get("latitude"), raw.get("longitude"))
            if pairing is not None:
                issues.append(pairing)
        raise InvalidPayload(issues) from e


def parse_ingest_payload(raw: Any) -> IngestPayload:
    """
    Validate a decoded ingest body.

    Raises:
        InvalidPayload: every violated field is listed in `issues`
    """
    return _parse(IngestPayload, raw)


def parse_manual_update(raw: Any) -> ManualTrackingUpdate:
    """Validate a decoded operator update body."""
    return _parse(ManualTrackingUpdate, raw)
