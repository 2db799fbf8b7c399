# load_tracking/services/realtime_ws/channel.py
"""
Live update channel.

One logical channel per load. Viewers of the same load share one Redis
subscription (reference counted) and each gets its own SubscriptionHandle.
Handles receive:
- on_insert(point) for every point published after they subscribed
- on_resync() after the Redis connection was restored; gaps must be refilled
  with a full listing
- on_error(ChannelDisconnect) when the connection drops
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable
from uuid import UUID, uuid4

from pydantic import ValidationError

from load_tracking.common.callbacks import invoke_callback
from load_tracking.common.constants import LOAD_TRACKING_CHANNEL_PREFIX, tracking_channel
from load_tracking.common.errors import ChannelDisconnect
from load_tracking.common.logger import log_debug, log_error, log_warning
from load_tracking.services.realtime_ws.redis_subscriber import RedisSubscriber
from load_tracking.shared.events.tracking_events import TrackingPointInserted
from load_tracking.shared.models.tracking import TrackingPoint

if TYPE_CHECKING:
    from load_tracking.config.loader import RealtimeSettings
    from load_tracking.infra.redis_client import RedisClient


InsertCallback = Callable[[TrackingPoint], Any]
ResyncCallback = Callable[[], Any]
ErrorCallback = Callable[[Exception], Any]


class SubscriptionHandle:
    """
    One viewer's subscription to a load.

    unsubscribe() is idempotent and takes effect before it returns:
    no callback runs afterwards.
    """

    def __init__(
        self,
        channel: LiveUpdateChannel,
        load_id: UUID,
        on_insert: InsertCallback,
        on_resync: ResyncCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.id = uuid4().hex
        self.load_id = load_id
        self.created_at = datetime.now(timezone.utc)
        self._channel = channel
        self._on_insert = on_insert
        self._on_resync = on_resync
        self._on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._channel._release(self)

    async def deliver_insert(self, point: TrackingPoint) -> None:
        if self._active:
            await invoke_callback(self._on_insert, point)

    async def deliver_resync(self) -> None:
        if self._active:
            await invoke_callback(self._on_resync)

    async def deliver_error(self, error: Exception) -> None:
        if self._active:
            await invoke_callback(self._on_error, error)

    def __repr__(self) -> str:
        return f"SubscriptionHandle(id={self.id}, load_id={self.load_id}, active={self._active})"


class LiveUpdateChannel:
    """
    Per-load fan-out of tracking inserts received over Redis Pub/Sub.
    """

    def __init__(self, redis: RedisClient, settings: RealtimeSettings | None = None) -> None:
        callbacks = {
            "on_reconnect": self._resync_all,
            "on_disconnect": self._disconnected,
        }
        if settings is not None:
            self._subscriber = RedisSubscriber.from_settings(redis, self._dispatch, settings, **callbacks)
        else:
            self._subscriber = RedisSubscriber(redis, self._dispatch, **callbacks)

        # load_id -> handles in subscription order
        self._handles: dict[UUID, list[SubscriptionHandle]] = {}
        self._delivered = 0

    async def start(self) -> None:
        await self._subscriber.start()

    async def stop(self) -> None:
        for handles in list(self._handles.values()):
            for handle in list(handles):
                handle.unsubscribe()
        await self._subscriber.stop()

    async def subscribe(
        self,
        load_id: UUID,
        on_insert: InsertCallback,
        on_resync: ResyncCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> SubscriptionHandle:
        """
        Register a viewer for a load.
        The first viewer of a load opens the shared Redis subscription.
        """
        handle = SubscriptionHandle(self, load_id, on_insert, on_resync, on_error)
        handles = self._handles.setdefault(load_id, [])
        handles.append(handle)

        if len(handles) == 1:
            await self._subscriber.subscribe(tracking_channel(load_id))

        await log_debug(f"Viewer {handle.id} subscribed to load {load_id} ({len(handles)} on this load)")
        return handle

    def viewer_count(self, load_id: UUID) -> int:
        return len(self._handles.get(load_id, ()))

    def get_stats(self) -> dict[str, Any]:
        return {
            "loads": len(self._handles),
            "viewers": sum(len(h) for h in self._handles.values()),
            "events_delivered": self._delivered,
            **{f"redis_{k}": v for k, v in self._subscriber.get_stats().items()},
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _release(self, handle: SubscriptionHandle) -> None:
        handles = self._handles.get(handle.load_id)
        if not handles:
            return
        if handle in handles:
            handles.remove(handle)
        if not handles:
            del self._handles[handle.load_id]
            self._subscriber.release(tracking_channel(handle.load_id))

    async def _dispatch(self, channel: str, data: dict[str, Any]) -> None:
        """Route one Pub/Sub message to the viewers of its load."""
        if not channel.startswith(LOAD_TRACKING_CHANNEL_PREFIX):
            return

        try:
            event = TrackingPointInserted.model_validate(data)
        except ValidationError as e:
            await log_warning(f"Malformed insert event on {channel}: {e}")
            return

        point = event.point
        if point.load_id is None:
            point = point.model_copy(update={"load_id": event.load_id})

        for handle in list(self._handles.get(event.load_id, ())):
            try:
                await handle.deliver_insert(point)
                self._delivered += 1
            except Exception as e:
                await log_error(f"Insert delivery to viewer {handle.id} failed: {e}", exc_info=True)

    async def _resync_all(self) -> None:
        for handles in list(self._handles.values()):
            for handle in list(handles):
                try:
                    await handle.deliver_resync()
                except Exception as e:
                    await log_error(f"Resync signal to viewer {handle.id} failed: {e}", exc_info=True)

    async def _disconnected(self, error: Exception) -> None:
        disconnect = ChannelDisconnect()
        for handles in list(self._handles.values()):
            for handle in list(handles):
                try:
                    await handle.deliver_error(disconnect)
                except Exception as e:
                    await log_error(f"Disconnect signal to viewer {handle.id} failed: {e}", exc_info=True)
