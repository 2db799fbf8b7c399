# tests/services/realtime_ws/test_channel.py
"""
Tests for LiveUpdateChannel fan-out and SubscriptionHandle lifecycle.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from load_tracking.common.constants import tracking_channel
from load_tracking.common.errors import ChannelDisconnect
from load_tracking.services.realtime_ws.channel import LiveUpdateChannel
from load_tracking.shared.events.tracking_events import TrackingPointInserted


@pytest.fixture
def subscriber() -> MagicMock:
    sub = MagicMock()
    sub.start = AsyncMock()
    sub.stop = AsyncMock()
    sub.subscribe = AsyncMock()
    sub.get_stats.return_value = {"connected": True}
    return sub


@pytest.fixture
def channel(subscriber) -> LiveUpdateChannel:
    live = LiveUpdateChannel(MagicMock())
    live._subscriber = subscriber
    return live


def _event_data(point) -> dict:
    return json.loads(TrackingPointInserted(load_id=point.load_id, point=point).to_json())


class TestSubscriptions:

    @pytest.mark.asyncio
    async def test_viewers_share_one_redis_subscription(self, channel, subscriber, load_id) -> None:
        first = await channel.subscribe(load_id, AsyncMock())
        second = await channel.subscribe(load_id, AsyncMock())

        subscriber.subscribe.assert_awaited_once_with(tracking_channel(load_id))
        assert channel.viewer_count(load_id) == 2

        first.unsubscribe()
        subscriber.release.assert_not_called()

        second.unsubscribe()
        subscriber.release.assert_called_once_with(tracking_channel(load_id))
        assert channel.viewer_count(load_id) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, channel, subscriber, load_id) -> None:
        handle = await channel.subscribe(load_id, AsyncMock())

        handle.unsubscribe()
        handle.unsubscribe()

        assert not handle.active
        subscriber.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_releases_everything(self, channel, subscriber, load_id) -> None:
        handle = await channel.subscribe(load_id, AsyncMock())

        await channel.stop()

        assert not handle.active
        subscriber.stop.assert_awaited_once()


class TestDispatch:

    @pytest.mark.asyncio
    async def test_insert_reaches_viewers_of_that_load(self, channel, load_id, make_point) -> None:
        mine, other = AsyncMock(), AsyncMock()
        await channel.subscribe(load_id, mine)
        await channel.subscribe(uuid4(), other)
        point = make_point()

        await channel._dispatch(tracking_channel(load_id), _event_data(point))

        mine.assert_awaited_once_with(point)
        other.assert_not_awaited()
        assert channel.get_stats()["events_delivered"] == 1

    @pytest.mark.asyncio
    async def test_sync_callbacks_supported(self, channel, load_id, make_point) -> None:
        received = []
        await channel.subscribe(load_id, received.append)

        await channel._dispatch(tracking_channel(load_id), _event_data(make_point()))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_no_callback_after_unsubscribe(self, channel, load_id, make_point) -> None:
        on_insert = AsyncMock()
        handle = await channel.subscribe(load_id, on_insert)
        handle.unsubscribe()

        await channel._dispatch(tracking_channel(load_id), _event_data(make_point()))

        on_insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_point_without_load_id_gets_it_from_event(self, channel, load_id, make_point) -> None:
        on_insert = AsyncMock()
        await channel.subscribe(load_id, on_insert)
        data = _event_data(make_point())
        data["point"].pop("loadId")

        await channel._dispatch(tracking_channel(load_id), data)

        assert on_insert.await_args.args[0].load_id == load_id

    @pytest.mark.asyncio
    async def test_malformed_event_dropped(self, channel, load_id) -> None:
        on_insert = AsyncMock()
        await channel.subscribe(load_id, on_insert)

        await channel._dispatch(tracking_channel(load_id), {"load_id": "nope"})

        on_insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_viewer_does_not_block_others(self, channel, load_id, make_point) -> None:
        healthy = AsyncMock()
        await channel.subscribe(load_id, AsyncMock(side_effect=RuntimeError("boom")))
        await channel.subscribe(load_id, healthy)

        await channel._dispatch(tracking_channel(load_id), _event_data(make_point()))

        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_foreign_channel_ignored(self, channel, load_id, make_point) -> None:
        on_insert = AsyncMock()
        await channel.subscribe(load_id, on_insert)

        await channel._dispatch("something_else", _event_data(make_point()))

        on_insert.assert_not_awaited()


class TestConnectionSignals:

    @pytest.mark.asyncio
    async def test_disconnect_goes_to_on_error(self, channel, load_id) -> None:
        on_error = AsyncMock()
        await channel.subscribe(load_id, AsyncMock(), on_error=on_error)

        await channel._disconnected(ConnectionError("redis down"))

        error = on_error.await_args.args[0]
        assert isinstance(error, ChannelDisconnect)
        assert error.message == "Live channel disconnected"

    @pytest.mark.asyncio
    async def test_resync_all_viewers(self, channel, load_id) -> None:
        first, second = AsyncMock(), AsyncMock()
        await channel.subscribe(load_id, AsyncMock(), on_resync=first)
        await channel.subscribe(uuid4(), AsyncMock(), on_resync=second)

        await channel._resync_all()

        first.assert_awaited_once()
        second.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_callbacks_are_skipped(self, channel, load_id) -> None:
        await channel.subscribe(load_id, AsyncMock())

        await channel._resync_all()
        await channel._disconnected(ConnectionError("redis down"))
