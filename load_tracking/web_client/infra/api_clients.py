# load_tracking/web_client/infra/api_clients.py
"""
HTTP clients used by the viewer pages.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import httpx
from pydantic import ValidationError

from load_tracking.common.errors import NotFound, PersistenceFailure, ServiceUnavailable
from load_tracking.common.logger import log_warning
from load_tracking.config import settings
from load_tracking.shared.models.tracking import TrackingSnapshot


READ_FAILURE_MESSAGE = "Failed to fetch tracking data"


class BaseClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self.client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()


class TrackingClient(BaseClient):
    """
    Read side of the Tracking API.

    Snapshots are cached per load for QUERY_CACHE_SECONDS, the same window the
    API advertises in Cache-Control. force=True bypasses the cache.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        cache_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or f"{settings.deployment.tracking_api_url}/api/v1/tracking"
        super().__init__(base_url, transport=transport)
        self.cache_seconds = settings.tracking.QUERY_CACHE_SECONDS if cache_seconds is None else cache_seconds
        # load_id -> (fetched_at monotonic, snapshot)
        self._cache: Dict[UUID, Tuple[float, TrackingSnapshot]] = {}

    async def get_snapshot(self, load_id: UUID, *, force: bool = False) -> TrackingSnapshot:
        """
        Load summary and ordered points.

        Raises:
            NotFound: unknown load
            PersistenceFailure: the API failed or answered with a malformed body
            ServiceUnavailable: the API could not be reached
        """
        if not force:
            cached = self._cache.get(load_id)
            if cached is not None and time.monotonic() - cached[0] < self.cache_seconds:
                return cached[1]

        try:
            data = await self._get(f"/{load_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                self._cache.pop(load_id, None)
                raise NotFound() from e
            await log_warning(f"Tracking API answered {e.response.status_code} for load {load_id}")
            raise PersistenceFailure(_error_message(e.response)) from e
        except httpx.HTTPError as e:
            await log_warning(f"Tracking API unreachable: {e}")
            raise ServiceUnavailable("Tracking service unreachable") from e
        except ValueError as e:
            raise PersistenceFailure(READ_FAILURE_MESSAGE) from e

        try:
            snapshot = TrackingSnapshot.model_validate(data)
        except ValidationError as e:
            await log_warning(f"Malformed tracking response for load {load_id}: {e}")
            raise PersistenceFailure(READ_FAILURE_MESSAGE) from e

        # Query payloads omit loadId
        snapshot = snapshot.model_copy(update={
            "points": [point.model_copy(update={"load_id": load_id}) for point in snapshot.points],
        })
        self._cache[load_id] = (time.monotonic(), snapshot)
        return snapshot

    def invalidate(self, load_id: Optional[UUID] = None) -> None:
        if load_id is None:
            self._cache.clear()
        else:
            self._cache.pop(load_id, None)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return READ_FAILURE_MESSAGE
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return READ_FAILURE_MESSAGE
