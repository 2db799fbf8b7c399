# tests/common/test_constants.py
"""
Tests for shared constants and the callback helper.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from load_tracking.common.callbacks import invoke_callback
from load_tracking.common.constants import (
    LOAD_TRACKING_CHANNEL_PREFIX,
    LoadStatus,
    OperatorRole,
    TypeMsg,
    tracking_channel,
)

from tests.conftest import LOAD_ID


class TestTypeMsg:

    def test_values(self) -> None:
        assert [m.value for m in TypeMsg] == ["debug", "info", "warning", "error", "critical"]

    def test_is_str_enum(self) -> None:
        assert isinstance(TypeMsg.DEBUG, str)
        assert TypeMsg.INFO == "info"


class TestLoadStatus:

    def test_values(self) -> None:
        assert {s.value for s in LoadStatus} == {"pending", "assigned", "in_transit", "delivered", "cancelled"}

    def test_str_is_value(self) -> None:
        assert str(LoadStatus.IN_TRANSIT) == "in_transit"
        assert f"{LoadStatus.DELIVERED}" == "delivered"

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            LoadStatus("teleported")


class TestOperatorRole:

    def test_from_header_value(self) -> None:
        assert OperatorRole("dispatcher") is OperatorRole.DISPATCHER
        assert str(OperatorRole.DRIVER) == "driver"


class TestTrackingChannel:

    def test_channel_name(self) -> None:
        assert tracking_channel(LOAD_ID) == f"load_tracking:{LOAD_ID}"
        assert tracking_channel(LOAD_ID).startswith(LOAD_TRACKING_CHANNEL_PREFIX)


class TestInvokeCallback:

    @pytest.mark.asyncio
    async def test_sync_callback(self) -> None:
        callback = Mock()

        await invoke_callback(callback, 1, 2)

        callback.assert_called_once_with(1, 2)

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self) -> None:
        callback = AsyncMock()

        await invoke_callback(callback, "point")

        callback.assert_awaited_once_with("point")

    @pytest.mark.asyncio
    async def test_none_is_noop(self) -> None:
        await invoke_callback(None, "ignored")
