# tests/conftest.py
"""
Shared fixtures and settings for the tests.
"""

from __future__ import annotations

import itertools
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

# Environment before any project import
os.environ.setdefault("TRACKING_INGEST_API_KEY", "test_ingest_key")
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test_api_key")

from load_tracking.shared.models.tracking import LoadSummary, TrackingPoint


LOAD_ID = UUID("11111111-1111-4111-8111-111111111111")
COMPANY_ID = UUID("22222222-2222-4222-8222-222222222222")
DRIVER_ID = UUID("33333333-3333-4333-8333-333333333333")
BASE_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Repository root."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Configuration used by loader tests."""
    return {
        "PROJECT_NAME": "load_tracking_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "TRACKING_API_HOST": "localhost",
        "TRACKING_API_PORT": 9092,
        "REALTIME_WS_GATEWAY_HOST": "localhost",
        "REALTIME_WS_GATEWAY_PORT": 9089,
        "WEB_CLIENT_PORT": 9082,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "INGEST_API_KEY_HEADER": "x-api-key",
        "QUERY_CACHE_SECONDS": 30,
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "load_tracking_test",
        "DB_USER": "postgres",
        "DB_MIN_POOL_SIZE": 1,
        "DB_MAX_POOL_SIZE": 5,
        "DB_COMMAND_TIMEOUT": 30,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_MAX_CONNECTIONS": 10,
        "RECONNECT_INITIAL_DELAY": 0.1,
        "RECONNECT_MAX_DELAY": 5.0,
        "RECONNECT_MULTIPLIER": 3.0,
        "SUBSCRIBE_TIMEOUT": 2.0,
        "POLL_TIMEOUT": 0.5,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Write mock_config to a temporary config.json."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, indent=2))
    return config_file


# =============================================================================
# INFRASTRUCTURE MOCKS
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Database manager mock."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_publisher() -> AsyncMock:
    """Redis publisher mock."""
    publisher = AsyncMock()
    publisher.publish = AsyncMock(return_value=1)
    return publisher


class InMemoryTrackingRepository:
    """TrackingRepository stand-in backed by dicts; orders like the SQL does."""

    def __init__(self) -> None:
        self.loads: dict[UUID, dict[str, Any]] = {}
        self.points: list[dict[str, Any]] = []
        self._seq = itertools.count(1)
        self.insert_calls = 0

    def add_load(
        self,
        load_id: UUID = LOAD_ID,
        load_number: str = "L-1001",
        status: str = "assigned",
        company_id: UUID = COMPANY_ID,
        assigned_driver_id: UUID | None = DRIVER_ID,
    ) -> dict[str, Any]:
        row = {
            "id": load_id,
            "load_number": load_number,
            "status": status,
            "company_id": company_id,
            "assigned_driver_id": assigned_driver_id,
        }
        self.loads[load_id] = row
        return row

    async def get_load(self, load_id: UUID) -> dict[str, Any] | None:
        row = self.loads.get(load_id)
        return dict(row) if row else None

    async def get_load_for_operator(
        self,
        load_id: UUID,
        company_id: UUID,
        driver_id: UUID | None = None,
    ) -> dict[str, Any] | None:
        row = self.loads.get(load_id)
        if row is None or row["company_id"] != company_id:
            return None
        if driver_id is not None and row["assigned_driver_id"] != driver_id:
            return None
        return dict(row)

    async def insert_point(self, load_id, status, latitude, longitude, location, notes,
                           created_at=None, updated_by=None) -> dict[str, Any]:
        self.insert_calls += 1
        row = {
            "id": uuid4(),
            "seq": next(self._seq),
            "load_id": load_id,
            "status": status,
            "latitude": latitude,
            "longitude": longitude,
            "location": location,
            "notes": notes,
            "updated_by": updated_by,
            "created_at": created_at or datetime.now(timezone.utc),
        }
        self.points.append(row)
        return {k: v for k, v in row.items() if k != "seq"}

    async def list_points(self, load_id: UUID) -> list[dict[str, Any]]:
        rows = [p for p in self.points if p["load_id"] == load_id]
        rows.sort(key=lambda p: (p["created_at"], p["seq"]))
        return [{k: v for k, v in p.items() if k != "seq"} for p in rows]

    async def update_load_status(self, load_id: UUID, status: str) -> None:
        self.loads[load_id]["status"] = status


@pytest.fixture
def repository() -> InMemoryTrackingRepository:
    repo = InMemoryTrackingRepository()
    repo.add_load()
    return repo


# =============================================================================
# MODEL FIXTURES
# =============================================================================

@pytest.fixture
def load_id() -> UUID:
    return LOAD_ID


@pytest.fixture
def load_summary() -> LoadSummary:
    return LoadSummary(id=LOAD_ID, load_number="L-1001", status="in_transit")


@pytest.fixture
def make_point() -> Callable[..., TrackingPoint]:
    """Factory for TrackingPoint; minutes are offsets from 2024-01-01 10:00 UTC."""

    def _make(
        minutes: float = 0,
        *,
        point_id: UUID | None = None,
        load_id: UUID | None = LOAD_ID,
        status: str = "in_transit",
        latitude: float | None = -26.2,
        longitude: float | None = 28.0,
        location: str | None = None,
        notes: str | None = None,
    ) -> TrackingPoint:
        return TrackingPoint(
            id=point_id or uuid4(),
            load_id=load_id,
            status=status,
            latitude=latitude,
            longitude=longitude,
            location=location,
            notes=notes,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture
def sample_point_row() -> dict[str, Any]:
    """Row as returned by the repository."""
    return {
        "id": uuid4(),
        "load_id": LOAD_ID,
        "status": "in_transit",
        "latitude": -26.2,
        "longitude": 28.0,
        "location": "Johannesburg depot",
        "notes": None,
        "updated_by": None,
        "created_at": BASE_TIME,
    }


class FakeHandle:
    """Subscription handle recording unsubscribe calls."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.unsubscribe_calls = 0

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1


class FakeLiveChannel:
    """Captures the callbacks a subscriber registers so tests can push events."""

    def __init__(self, connected: bool = True) -> None:
        self.handle = FakeHandle(connected)
        self.subscriptions: list[UUID] = []
        self.on_insert: Callable[..., Any] | None = None
        self.on_resync: Callable[..., Any] | None = None
        self.on_error: Callable[..., Any] | None = None

    async def subscribe(self, load_id, on_insert, on_resync=None, on_error=None) -> FakeHandle:
        self.subscriptions.append(load_id)
        self.on_insert = on_insert
        self.on_resync = on_resync
        self.on_error = on_error
        return self.handle


@pytest.fixture
def fake_channel() -> FakeLiveChannel:
    return FakeLiveChannel()
