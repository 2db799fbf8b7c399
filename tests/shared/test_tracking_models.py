# tests/shared/test_tracking_models.py
"""
Tests for tracking DTOs and payload validation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from load_tracking.common.constants import LoadStatus
from load_tracking.common.errors import InvalidPayload
from load_tracking.shared.events.tracking_events import TrackingPointInserted
from load_tracking.shared.models.tracking import (
    COORDINATES_UNPAIRED,
    LoadSummary,
    TrackingPoint,
    TrackingSnapshot,
    parse_ingest_payload,
    parse_manual_update,
)


def _payload(**overrides):
    data = {"loadId": str(uuid4()), "status": "in_transit"}
    data.update(overrides)
    return data


def _codes(exc_info) -> set[str]:
    return {issue["code"] for issue in exc_info.value.issues}


def _paths(exc_info) -> list[list]:
    return [issue["path"] for issue in exc_info.value.issues]


class TestIngestPayloadValidation:
    """Coordinate, status and length rules."""

    def test_valid_payload_with_coordinates(self) -> None:
        payload = parse_ingest_payload(_payload(latitude=-26.2, longitude=28.0))

        assert payload.status == LoadStatus.IN_TRANSIT
        assert payload.has_coordinates
        assert payload.timestamp is None

    def test_both_coordinates_null_is_accepted(self) -> None:
        payload = parse_ingest_payload(_payload(latitude=None, longitude=None))

        assert payload.latitude is None
        assert payload.longitude is None
        assert not payload.has_coordinates

    def test_latitude_out_of_range(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude=91, longitude=28.0))

        assert ["latitude"] in _paths(exc_info)

    def test_longitude_out_of_range(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude=-26.2, longitude=-181))

        assert ["longitude"] in _paths(exc_info)

    def test_latitude_without_longitude(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude=-26.2))

        assert COORDINATES_UNPAIRED in _codes(exc_info)
        assert ["longitude"] in _paths(exc_info)

    def test_longitude_without_latitude(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(longitude=28.0))

        assert COORDINATES_UNPAIRED in _codes(exc_info)
        assert ["latitude"] in _paths(exc_info)

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(status="teleported"))

        assert ["status"] in _paths(exc_info)

    def test_empty_status_rejected(self) -> None:
        with pytest.raises(InvalidPayload):
            parse_ingest_payload(_payload(status=""))

    def test_location_and_notes_length(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(location="x" * 256, notes="y" * 513))

        paths = _paths(exc_info)
        assert ["location"] in paths
        assert ["notes"] in paths

    def test_limits_are_inclusive(self) -> None:
        payload = parse_ingest_payload(
            _payload(latitude=90, longitude=-180, location="x" * 255, notes="y" * 512)
        )

        assert payload.latitude == 90
        assert payload.longitude == -180

    def test_all_violations_reported_together(self) -> None:
        """Field errors and the pairing rule arrive in one response."""
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload({"loadId": "not-a-uuid", "status": "bogus", "latitude": 95})

        paths = _paths(exc_info)
        assert ["loadId"] in paths
        assert ["status"] in paths
        assert ["latitude"] in paths
        assert COORDINATES_UNPAIRED in _codes(exc_info)

    def test_missing_load_id(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload({"status": "pending"})

        assert ["loadId"] in _paths(exc_info)

    def test_non_object_body(self) -> None:
        with pytest.raises(InvalidPayload):
            parse_ingest_payload(["not", "an", "object"])

    def test_timestamp_normalized_to_utc(self) -> None:
        payload = parse_ingest_payload(_payload(timestamp="2024-01-01T12:00:00+02:00"))

        assert payload.timestamp == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert payload.timestamp.utcoffset() == timedelta(0)

    def test_naive_timestamp_taken_as_utc(self) -> None:
        payload = parse_ingest_payload(_payload(timestamp="2024-01-01T10:00:00"))

        assert payload.timestamp.tzinfo is not None
        assert payload.timestamp.hour == 10

    def test_string_coordinates_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude="-26.2", longitude="28.0"))

        paths = _paths(exc_info)
        assert ["latitude"] in paths
        assert ["longitude"] in paths

    def test_boolean_coordinate_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude=True, longitude=28.0))

        assert ["latitude"] in _paths(exc_info)

    def test_epoch_timestamp_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(timestamp=1704103200))

        assert ["timestamp"] in _paths(exc_info)

    def test_numeric_string_timestamp_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(timestamp="1704103200"))

        assert ["timestamp"] in _paths(exc_info)

    def test_issue_shape(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_ingest_payload(_payload(latitude=91, longitude=0))

        issue = exc_info.value.issues[0]
        assert set(issue) == {"path", "message", "code"}
        assert exc_info.value.to_dict()["error"] == "Invalid payload"


class TestManualUpdateValidation:
    def test_valid_update(self) -> None:
        update = parse_manual_update({"status": "delivered", "location": "Durban port"})

        assert update.status == LoadStatus.DELIVERED
        assert update.location == "Durban port"

    def test_partial_coordinates_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_manual_update({"status": "in_transit", "latitude": -29.8})

        assert COORDINATES_UNPAIRED in _codes(exc_info)

    def test_string_coordinates_rejected(self) -> None:
        with pytest.raises(InvalidPayload) as exc_info:
            parse_manual_update({"status": "in_transit", "latitude": "-29.8", "longitude": "31.0"})

        assert ["latitude"] in _paths(exc_info)


class TestTrackingPoint:
    def test_public_payload_is_camel_case_without_load_id(self, make_point) -> None:
        point = make_point(location="Depot")
        data = point.to_public()

        assert "loadId" not in data
        assert "updatedBy" not in data
        assert data["createdAt"].startswith("2024-01-01T10:00:00")
        assert data["status"] == "in_transit"
        assert data["location"] == "Depot"

    def test_event_payload_includes_load_id(self, make_point, load_id) -> None:
        data = make_point().to_event()

        assert data["loadId"] == str(load_id)

    def test_is_immutable(self, make_point) -> None:
        point = make_point()

        with pytest.raises(Exception):
            point.status = LoadStatus.DELIVERED

    def test_naive_created_at_becomes_utc(self) -> None:
        point = TrackingPoint(id=uuid4(), status="pending", created_at=datetime(2024, 1, 1, 9, 0))

        assert point.created_at.tzinfo == timezone.utc

    def test_snapshot_response_shape(self, make_point, load_summary) -> None:
        snapshot = TrackingSnapshot(summary=load_summary, points=[make_point(0), make_point(60)])
        body = snapshot.to_response()

        assert body["load"] == {"id": str(load_summary.id), "loadNumber": "L-1001", "status": "in_transit"}
        assert len(body["tracking"]) == 2

    def test_snapshot_parses_api_response(self, make_point, load_summary) -> None:
        body = TrackingSnapshot(summary=load_summary, points=[make_point()]).to_response()

        snapshot = TrackingSnapshot.model_validate(body)

        assert snapshot.summary.load_number == "L-1001"
        assert snapshot.points[0].load_id is None

    def test_load_summary_hides_scoping_columns(self) -> None:
        summary = LoadSummary(
            id=uuid4(),
            load_number="L-7",
            status="pending",
            company_id=uuid4(),
            assigned_driver_id=uuid4(),
        )

        assert set(summary.model_dump(by_alias=True)) == {"id", "loadNumber", "status"}


class TestTrackingPointInserted:
    def test_json_round_trip_keeps_point(self, make_point, load_id) -> None:
        point = make_point(location="N1")
        event = TrackingPointInserted(load_id=load_id, point=point)

        restored = TrackingPointInserted.from_json(event.to_json())

        assert restored.event_type == "tracking.point_inserted"
        assert restored.load_id == load_id
        assert restored.point == point
        assert restored.event_id == event.event_id
