# load_tracking/services/realtime_ws/redis_subscriber.py
"""
Redis Pub/Sub subscriber for tracking channels.

Listens on load_tracking:{load_id} for every load with at least one viewer.
When the connection drops it reconnects with exponential backoff,
resubscribes every active channel and fires on_reconnect so consumers can
refill whatever they missed.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from redis.exceptions import RedisError

from load_tracking.common.constants import TypeMsg
from load_tracking.common.logger import log_debug, log_error, log_info, log_warning

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

    from load_tracking.config.loader import RealtimeSettings
    from load_tracking.infra.redis_client import RedisClient


MessageHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

_CONNECTION_ERRORS = (RedisError, OSError)


class RedisSubscriber:
    """
    Subscriber on Redis Pub/Sub.

    Receives messages and hands them to message_handler(channel, data).
    """

    def __init__(
        self,
        redis: RedisClient,
        message_handler: MessageHandler,
        *,
        on_reconnect: Callable[[], Awaitable[None]] | None = None,
        on_disconnect: Callable[[Exception], Awaitable[None]] | None = None,
        initial_delay: float = 0.5,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        poll_timeout: float = 1.0,
    ) -> None:
        """
        Args:
            redis: Connected Redis client
            message_handler: Callback for decoded messages (channel, data)
            on_reconnect: Called after a lost connection is restored and resubscribed
            on_disconnect: Called once per outage with the error that started it
        """
        self._redis = redis
        self._handler = message_handler
        self._on_reconnect = on_reconnect
        self._on_disconnect = on_disconnect

        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._multiplier = multiplier
        self._poll_timeout = poll_timeout
        self._delay = initial_delay

        self._pubsub: PubSub | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._connection_lost = False
        self._pending: set[asyncio.Task] = set()

        self._channels: set[str] = set()

        self._messages_received = 0
        self._reconnects = 0

    @classmethod
    def from_settings(
        cls,
        redis: RedisClient,
        message_handler: MessageHandler,
        settings: RealtimeSettings,
        **callbacks: Any,
    ) -> "RedisSubscriber":
        return cls(
            redis,
            message_handler,
            initial_delay=settings.RECONNECT_INITIAL_DELAY,
            max_delay=settings.RECONNECT_MAX_DELAY,
            multiplier=settings.RECONNECT_MULTIPLIER,
            poll_timeout=settings.POLL_TIMEOUT,
            **callbacks,
        )

    @property
    def channels(self) -> set[str]:
        return set(self._channels)

    @property
    def connected(self) -> bool:
        return self._pubsub is not None and not self._connection_lost

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        for task in list(self._pending):
            task.cancel()

        await self._drop_pubsub()

    async def subscribe(self, channel: str) -> None:
        """
        Start listening on a channel.

        Never raises on connection errors: the channel stays registered and is
        resubscribed by the listen loop once Redis is back.
        """
        is_new = channel not in self._channels
        self._channels.add(channel)

        if not is_new or self._pubsub is None:
            return

        try:
            await self._pubsub.subscribe(channel)
        except _CONNECTION_ERRORS as e:
            await log_warning(f"Subscribe to {channel} failed, will retry on reconnect: {e}")
            await self._mark_lost(e)

    def release(self, channel: str) -> None:
        """
        Stop listening on a channel.
        Takes effect immediately; the UNSUBSCRIBE command is sent in the background.
        """
        if channel not in self._channels:
            return
        self._channels.discard(channel)

        if self._pubsub is None:
            return

        task = asyncio.get_running_loop().create_task(self._send_unsubscribe(channel))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def get_stats(self) -> dict[str, Any]:
        return {
            "channels": len(self._channels),
            "messages_received": self._messages_received,
            "reconnects": self._reconnects,
            "connected": self.connected,
        }

    # =========================================================================
    # LISTEN LOOP
    # =========================================================================

    async def _listen(self) -> None:
        """Read messages until stopped, reconnecting on connection loss."""
        while self._running:
            try:
                if self._pubsub is None:
                    await self._connect()

                if not self._channels or self._pubsub.connection is None:
                    await asyncio.sleep(self._poll_timeout)
                    continue

                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._poll_timeout,
                )
                if message is None:
                    continue

                await self._process_message(message)

            except asyncio.CancelledError:
                raise
            except _CONNECTION_ERRORS as e:
                await self._handle_connection_loss(e)
            except Exception as e:
                # Connection state is unknown; rebuild it so consumers resync
                await log_error(f"Unexpected error in Pub/Sub listen loop: {e}", exc_info=True)
                await self._handle_connection_loss(e)

    async def _connect(self) -> None:
        pubsub = self._redis.pubsub()
        if self._channels:
            await pubsub.subscribe(*self._channels)
        self._pubsub = pubsub

        if self._connection_lost:
            self._connection_lost = False
            self._delay = self._initial_delay
            self._reconnects += 1
            await log_info(
                f"Redis Pub/Sub reconnected, {len(self._channels)} channel(s) resubscribed",
                type_msg=TypeMsg.INFO,
            )
            if self._on_reconnect is not None:
                await self._on_reconnect()

    async def _mark_lost(self, error: Exception) -> None:
        """Drop the connection; consumers hear about it once per outage."""
        first_failure = not self._connection_lost
        self._connection_lost = True
        await self._drop_pubsub()

        if first_failure:
            await log_warning(f"Redis Pub/Sub connection lost: {error}")
            if self._on_disconnect is not None:
                await self._on_disconnect(error)

    async def _handle_connection_loss(self, error: Exception) -> None:
        await self._mark_lost(error)

        await log_debug(f"Reconnecting to Redis in {self._delay:.1f}s")
        await asyncio.sleep(self._delay)
        self._delay = min(self._delay * self._multiplier, self._max_delay)

    async def _send_unsubscribe(self, channel: str) -> None:
        # Resubscribed before this ran
        if channel in self._channels or self._pubsub is None:
            return
        try:
            await self._pubsub.unsubscribe(channel)
        except _CONNECTION_ERRORS as e:
            await log_warning(f"Unsubscribe from {channel} failed: {e}")

    async def _drop_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except _CONNECTION_ERRORS as e:
            await log_debug(f"Closing broken Pub/Sub connection: {e}")

    async def _process_message(self, message: dict[str, Any]) -> None:
        if message.get("type") != "message":
            return

        channel = message.get("channel", "")
        data = message.get("data", "")
        try:
            if isinstance(channel, bytes):
                channel = channel.decode("utf-8")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
        except UnicodeDecodeError:
            await log_warning(f"Undecodable message on {channel!r} skipped")
            return

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            await log_warning(f"Non-JSON message on {channel} skipped")
            return

        self._messages_received += 1
        try:
            await self._handler(channel, parsed)
        except Exception as e:
            await log_error(f"Handler failed for message on {channel}: {e}", exc_info=True)
