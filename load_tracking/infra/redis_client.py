# load_tracking/infra/redis_client.py
"""
Redis client for Pub/Sub fan-out of tracking inserts.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis
from redis.asyncio.client import PubSub

from load_tracking.common.logger import get_logger, log_error, log_info
from load_tracking.common.constants import TypeMsg

logger = get_logger("redis")


class RedisClient:
    """
    Async Redis client.
    One instance per process, created in the application lifespan.
    """

    def __init__(self) -> None:
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client is not initialized. Call connect() first.")
        return self._client

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
    ) -> None:
        """
        Connect to Redis.

        Args:
            url: Redis URL (taken from config when None)
            max_connections: Pool size
        """
        if self._client is not None:
            return

        if url is None:
            from load_tracking.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS

        await log_info("Connecting to Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        await self._client.ping()

        await log_info("Redis connection established", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Redis connection closed", type_msg=TypeMsg.INFO)

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    async def publish(self, channel: str, payload: dict[str, Any] | str) -> int:
        """
        Publish a message.

        Args:
            channel: Channel name
            payload: Dict (serialized to JSON) or a ready string

        Returns:
            Number of subscribers that received the message
        """
        if not isinstance(payload, str):
            payload = json.dumps(payload, ensure_ascii=False, default=str)
        return await self.client.publish(channel, payload)

    def pubsub(self) -> PubSub:
        """New Pub/Sub connection."""
        return self.client.pubsub()

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Redis health check failed: {e}")
            return False
