# tests/services/tracking/test_store.py
"""
Tests for TrackingPointStore: append, ordered listing, insert announcements.
"""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import asyncpg
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from load_tracking.common.constants import LoadStatus, OperatorRole, tracking_channel
from load_tracking.common.errors import PersistenceFailure
from load_tracking.services.tracking.store import (
    READ_FAILURE_MESSAGE,
    WRITE_FAILURE_MESSAGE,
    TrackingPointStore,
)
from load_tracking.shared.models.tracking import OperatorContext, PointDraft

from tests.conftest import BASE_TIME, COMPANY_ID, DRIVER_ID


def _draft(minutes: float | None = None, **overrides) -> PointDraft:
    data = {"status": LoadStatus.IN_TRANSIT, "latitude": -26.2, "longitude": 28.0}
    if minutes is not None:
        data["created_at"] = BASE_TIME + timedelta(minutes=minutes)
    data.update(overrides)
    return PointDraft(**data)


class TestAppend:

    @pytest.mark.asyncio
    async def test_append_returns_point_with_id(self, repository, mock_publisher, load_id) -> None:
        store = TrackingPointStore(repository, publisher=mock_publisher)

        point = await store.append(load_id, _draft(0, location="Depot"))

        assert point.id is not None
        assert point.load_id == load_id
        assert point.location == "Depot"
        assert point.created_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_append_publishes_insert_event(self, repository, mock_publisher, load_id) -> None:
        store = TrackingPointStore(repository, publisher=mock_publisher)

        point = await store.append(load_id, _draft(0))

        mock_publisher.publish.assert_awaited_once()
        channel, payload = mock_publisher.publish.call_args[0]
        assert channel == tracking_channel(load_id)
        event = json.loads(payload)
        assert event["event_type"] == "tracking.point_inserted"
        assert event["load_id"] == str(load_id)
        assert event["point"]["id"] == str(point.id)
        assert event["point"]["loadId"] == str(load_id)

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_append(self, repository, load_id) -> None:
        publisher = AsyncMock()
        publisher.publish.side_effect = RedisConnectionError("redis down")
        store = TrackingPointStore(repository, publisher=publisher)

        point = await store.append(load_id, _draft(0))

        assert point.id is not None
        assert len(await store.list_ordered(load_id)) == 1

    @pytest.mark.asyncio
    async def test_append_without_publisher(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)

        await store.append(load_id, _draft(0))

        assert repository.insert_calls == 1

    @pytest.mark.asyncio
    async def test_datastore_error_becomes_persistence_failure(self, load_id) -> None:
        repo = AsyncMock()
        repo.insert_point.side_effect = asyncpg.PostgresConnectionError("connection lost")
        store = TrackingPointStore(repo)

        with pytest.raises(PersistenceFailure) as exc_info:
            await store.append(load_id, _draft(0))

        assert exc_info.value.message == WRITE_FAILURE_MESSAGE
        # No internal detail in the public message
        assert "connection lost" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_returned_row_still_succeeds(self, load_id, mock_publisher) -> None:
        point_id = uuid4()
        repo = AsyncMock()
        repo.insert_point.return_value = {"id": str(point_id), "status": "bogus", "created_at": "garbage"}
        store = TrackingPointStore(repo, publisher=mock_publisher)

        point = await store.append(load_id, _draft(0, location="Depot"))

        repo.insert_point.assert_awaited_once()
        assert point.id == point_id
        assert point.load_id == load_id
        assert point.status == LoadStatus.IN_TRANSIT
        assert point.location == "Depot"
        assert point.created_at == BASE_TIME
        mock_publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_returned_row_without_usable_id(self, load_id, mock_publisher) -> None:
        repo = AsyncMock()
        repo.insert_point.return_value = {"id": "not-a-uuid", "status": "in_transit"}
        store = TrackingPointStore(repo, publisher=mock_publisher)

        with pytest.raises(PersistenceFailure) as exc_info:
            await store.append(load_id, _draft(0))

        assert exc_info.value.message == WRITE_FAILURE_MESSAGE
        mock_publisher.publish.assert_not_awaited()


class TestListOrdered:

    @pytest.mark.asyncio
    async def test_orders_by_created_at(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)
        for minutes in (30, 0, 90, 60):
            await store.append(load_id, _draft(minutes))

        points = await store.list_ordered(load_id)

        assert [p.created_at for p in points] == sorted(p.created_at for p in points)
        assert points[0].created_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)
        first = await store.append(load_id, _draft(0, notes="first"))
        second = await store.append(load_id, _draft(0, notes="second"))

        points = await store.list_ordered(load_id)

        assert [p.id for p in points] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_only_points_of_the_load(self, repository, load_id) -> None:
        other = repository.add_load(load_id=DRIVER_ID, load_number="L-2")["id"]
        store = TrackingPointStore(repository)
        await store.append(load_id, _draft(0))
        await store.append(other, _draft(0))

        assert len(await store.list_ordered(load_id)) == 1

    @pytest.mark.asyncio
    async def test_malformed_row(self, load_id, sample_point_row) -> None:
        repo = AsyncMock()
        broken = dict(sample_point_row)
        del broken["created_at"]
        repo.list_points.return_value = [sample_point_row, broken]
        store = TrackingPointStore(repo)

        with pytest.raises(PersistenceFailure) as exc_info:
            await store.list_ordered(load_id)

        assert exc_info.value.message == READ_FAILURE_MESSAGE


class TestLoads:

    @pytest.mark.asyncio
    async def test_get_load(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)

        load = await store.get_load(load_id)

        assert load.load_number == "L-1001"
        assert load.company_id == COMPANY_ID

    @pytest.mark.asyncio
    async def test_get_unknown_load(self, repository) -> None:
        store = TrackingPointStore(repository)

        assert await store.get_load(COMPANY_ID) is None

    @pytest.mark.asyncio
    async def test_operator_scope_for_driver(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)
        assigned = OperatorContext(user_id=DRIVER_ID, company_id=COMPANY_ID, role=OperatorRole.DRIVER)
        stranger = OperatorContext(user_id=COMPANY_ID, company_id=COMPANY_ID, role=OperatorRole.DRIVER)

        assert await store.get_load_for_operator(load_id, assigned) is not None
        assert await store.get_load_for_operator(load_id, stranger) is None

    @pytest.mark.asyncio
    async def test_dispatcher_sees_company_loads(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)
        dispatcher = OperatorContext(user_id=COMPANY_ID, company_id=COMPANY_ID, role=OperatorRole.DISPATCHER)
        other_company = OperatorContext(user_id=COMPANY_ID, company_id=DRIVER_ID, role=OperatorRole.ADMIN)

        assert await store.get_load_for_operator(load_id, dispatcher) is not None
        assert await store.get_load_for_operator(load_id, other_company) is None

    @pytest.mark.asyncio
    async def test_update_load_status(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)

        await store.update_load_status(load_id, LoadStatus.DELIVERED)

        assert repository.loads[load_id]["status"] == "delivered"


class TestSubscribeInserts:

    @pytest.mark.asyncio
    async def test_delegates_to_channel(self, repository, fake_channel, load_id) -> None:
        store = TrackingPointStore(repository, channel=fake_channel)
        callback = lambda point: None

        handle = await store.subscribe_inserts(load_id, callback)

        assert handle is fake_channel.handle
        assert fake_channel.subscriptions == [load_id]
        assert fake_channel.on_insert is callback

    @pytest.mark.asyncio
    async def test_requires_channel(self, repository, load_id) -> None:
        store = TrackingPointStore(repository)

        with pytest.raises(RuntimeError):
            await store.subscribe_inserts(load_id, lambda point: None)
