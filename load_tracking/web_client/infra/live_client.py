# load_tracking/web_client/infra/live_client.py
"""
WebSocket client for the Realtime Gateway.

Same subscribe contract as the server-side LiveUpdateChannel:
subscribe(load_id, on_insert, on_resync, on_error) returns a handle whose
unsubscribe() is idempotent and stops every callback before it returns.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional
from uuid import UUID

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from load_tracking.common.callbacks import invoke_callback
from load_tracking.common.errors import ChannelDisconnect
from load_tracking.common.logger import log_debug, log_error, log_warning
from load_tracking.config import settings
from load_tracking.config.loader import RealtimeSettings
from load_tracking.shared.models.tracking import TrackingPoint


# Gateway rejected the load id; retrying will not help
WS_CLOSE_POLICY_VIOLATION = 1008

_TRANSPORT_ERRORS = (WebSocketException, OSError, asyncio.TimeoutError)


class RemoteSubscription:
    """One load subscription over its own WebSocket connection."""

    def __init__(
        self,
        channel: RemoteLiveChannel,
        load_id: UUID,
        on_insert: Callable[[TrackingPoint], Any],
        on_resync: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> None:
        self.load_id = load_id
        self._channel = channel
        self._on_insert = on_insert
        self._on_resync = on_resync
        self._on_error = on_error

        self._task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self._active = True
        self._connected = False
        self._connections = 0
        self._outage_reported = False
        # Points may have been published that this subscription never saw
        self._missed = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def connected(self) -> bool:
        return self._active and self._connected

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._connected = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def start(self, timeout: float) -> None:
        """Open the connection and wait for the gateway to confirm the subscription."""
        self._task = asyncio.create_task(self._run())
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            if not self._connected:
                self._missed = True
            await log_warning(
                f"Live channel for load {self.load_id} not confirmed after {timeout:.1f}s, retrying in background"
            )

    # =========================================================================
    # CONNECTION LOOP
    # =========================================================================

    async def _run(self) -> None:
        try:
            await self._connect_loop()
        finally:
            # Never leave start() waiting on a loop that has ended
            self._ready.set()

    async def _connect_loop(self) -> None:
        delay = self._channel.initial_delay
        url = self._channel.url_for(self.load_id)

        while self._active:
            try:
                async with self._channel.connect(url) as ws:
                    async for raw in ws:
                        if not self._active:
                            return
                        if await self._handle_message(raw):
                            delay = self._channel.initial_delay

            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                if e.rcvd is not None and e.rcvd.code == WS_CLOSE_POLICY_VIOLATION:
                    await self._report_outage(ChannelDisconnect(f"Live updates rejected for load {self.load_id}"))
                    self._active = False
                    return
                await self._report_outage(ChannelDisconnect())
            except _TRANSPORT_ERRORS as e:
                await log_debug(f"Live channel for load {self.load_id} unavailable: {e}")
                await self._report_outage(ChannelDisconnect())
            else:
                # Server closed cleanly
                await self._report_outage(ChannelDisconnect())

            if not self._active:
                return
            await asyncio.sleep(delay)
            delay = min(delay * self._channel.multiplier, self._channel.max_delay)

    async def _handle_message(self, raw: Any) -> bool:
        """Process one gateway message. Returns True when a subscription was confirmed."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            await log_warning(f"Non-JSON live message for load {self.load_id} skipped")
            return False
        if not isinstance(data, dict):
            return False

        msg_type = data.get("type")

        if msg_type == "subscribed":
            self._connected = True
            self._outage_reported = False
            self._connections += 1
            self._ready.set()
            missed, self._missed = self._missed, False
            # Anything published while we were away is only visible via a full refetch
            if missed or self._connections > 1:
                await self._deliver(self._on_resync)
            return True

        if msg_type == "tracking_insert":
            try:
                point = TrackingPoint.model_validate(data.get("point"))
            except ValidationError as e:
                await log_warning(f"Malformed live point for load {self.load_id}: {e}")
                return False
            if point.load_id is None:
                point = point.model_copy(update={"load_id": self.load_id})
            await self._deliver(self._on_insert, point)
        elif msg_type == "resync":
            await self._deliver(self._on_resync)
        elif msg_type == "error":
            await self._deliver(self._on_error, ChannelDisconnect(data.get("message") or None))

        return False

    async def _report_outage(self, error: Exception) -> None:
        self._connected = False
        self._missed = True
        if self._outage_reported:
            return
        self._outage_reported = True
        await self._deliver(self._on_error, error)

    async def _deliver(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if not self._active:
            return
        try:
            await invoke_callback(callback, *args)
        except Exception as e:
            await log_error(f"Live callback for load {self.load_id} failed: {e}", exc_info=True)


class RemoteLiveChannel:
    """Viewer-side transport to the Realtime Gateway."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        realtime: Optional[RealtimeSettings] = None,
        connect: Optional[Callable[[str], Any]] = None,
    ) -> None:
        realtime = realtime or settings.realtime
        self.base_url = (base_url or settings.deployment.realtime_ws_url).rstrip("/")
        self.initial_delay = realtime.RECONNECT_INITIAL_DELAY
        self.max_delay = realtime.RECONNECT_MAX_DELAY
        self.multiplier = realtime.RECONNECT_MULTIPLIER
        self.subscribe_timeout = realtime.SUBSCRIBE_TIMEOUT
        self.connect = connect or websockets.connect

    def url_for(self, load_id: UUID) -> str:
        return f"{self.base_url}/ws/tracking/{load_id}"

    async def subscribe(
        self,
        load_id: UUID,
        on_insert: Callable[[TrackingPoint], Any],
        on_resync: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> RemoteSubscription:
        """
        Subscribe to live inserts for a load.

        Waits up to SUBSCRIBE_TIMEOUT for the gateway handshake; after that the
        connection keeps retrying in the background and reports through on_error.
        """
        subscription = RemoteSubscription(self, load_id, on_insert, on_resync, on_error)
        await subscription.start(self.subscribe_timeout)
        return subscription
