# load_tracking/services/tracking/store.py
"""
Tracking point store.

Append-only log of tracking points per load. Every row coming back from the
datastore is validated before it leaves this module; inserts are announced on
the load's Pub/Sub channel after the write commits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Protocol
from uuid import UUID

import asyncpg
from pydantic import ValidationError
from redis.exceptions import RedisError

from load_tracking.common.constants import LoadStatus, tracking_channel
from load_tracking.common.errors import PersistenceFailure
from load_tracking.common.logger import log_debug, log_error, log_warning
from load_tracking.shared.events.tracking_events import TrackingPointInserted
from load_tracking.shared.models.tracking import (
    LoadSummary,
    OperatorContext,
    PointDraft,
    TrackingPoint,
)
from load_tracking.services.tracking.repository import TrackingRepository

if TYPE_CHECKING:
    from load_tracking.services.realtime_ws.channel import LiveUpdateChannel, SubscriptionHandle


WRITE_FAILURE_MESSAGE = "Failed to persist telemetry"
READ_FAILURE_MESSAGE = "Failed to fetch tracking data"

# Driver/connection failures surfaced as PersistenceFailure
_DATASTORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class InsertPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any] | str) -> int: ...


class TrackingPointStore:
    """
    Append, list and subscribe for tracking points.

    Args:
        repository: SQL access
        publisher: Pub/Sub publisher for insert events (None disables announcements)
        channel: Live update channel for in-process subscriptions
    """

    def __init__(
        self,
        repository: TrackingRepository,
        publisher: InsertPublisher | None = None,
        channel: LiveUpdateChannel | None = None,
    ) -> None:
        self._repository = repository
        self._publisher = publisher
        self._channel = channel

    # =========================================================================
    # LOADS
    # =========================================================================

    async def get_load(self, load_id: UUID) -> LoadSummary | None:
        try:
            row = await self._repository.get_load(load_id)
        except _DATASTORE_ERRORS as e:
            await log_error(f"Load lookup failed for {load_id}: {e}", exc_info=True)
            raise PersistenceFailure(READ_FAILURE_MESSAGE) from e
        if row is None:
            return None
        return await self._validate_row(LoadSummary, row, READ_FAILURE_MESSAGE)

    async def get_load_for_operator(self, load_id: UUID, operator: OperatorContext) -> LoadSummary | None:
        """Load visible to the operator's company; drivers need an assignment."""
        driver_id = operator.user_id if operator.is_driver else None
        try:
            row = await self._repository.get_load_for_operator(load_id, operator.company_id, driver_id)
        except _DATASTORE_ERRORS as e:
            await log_error(f"Operator load lookup failed for {load_id}: {e}", exc_info=True)
            raise PersistenceFailure(READ_FAILURE_MESSAGE) from e
        if row is None:
            return None
        return await self._validate_row(LoadSummary, row, READ_FAILURE_MESSAGE)

    async def update_load_status(self, load_id: UUID, status: LoadStatus) -> None:
        try:
            await self._repository.update_load_status(load_id, status.value)
        except _DATASTORE_ERRORS as e:
            await log_error(f"Load status update failed for {load_id}: {e}", exc_info=True)
            raise PersistenceFailure(WRITE_FAILURE_MESSAGE) from e

    # =========================================================================
    # POINTS
    # =========================================================================

    async def append(self, load_id: UUID, draft: PointDraft) -> TrackingPoint:
        """
        Durably append one point and announce it.

        Returns:
            Stored point with its datastore id

        Raises:
            PersistenceFailure: insert failed, or returned no usable id
        """
        try:
            row = await self._repository.insert_point(
                load_id=load_id,
                status=draft.status.value,
                latitude=draft.latitude,
                longitude=draft.longitude,
                location=draft.location,
                notes=draft.notes,
                created_at=draft.created_at,
                updated_by=draft.updated_by,
            )
        except _DATASTORE_ERRORS as e:
            await log_error(f"Tracking insert failed for load {load_id}: {e}", exc_info=True)
            raise PersistenceFailure(WRITE_FAILURE_MESSAGE) from e

        point = await self._stored_point(load_id, draft, row)
        await self._announce(point)
        return point

    async def list_ordered(self, load_id: UUID) -> list[TrackingPoint]:
        """Every point of a load, ascending created_at, insertion order on ties."""
        try:
            rows = await self._repository.list_points(load_id)
        except _DATASTORE_ERRORS as e:
            await log_error(f"Tracking query failed for load {load_id}: {e}", exc_info=True)
            raise PersistenceFailure(READ_FAILURE_MESSAGE) from e
        return [await self._validate_row(TrackingPoint, row, READ_FAILURE_MESSAGE) for row in rows]

    async def subscribe_inserts(
        self,
        load_id: UUID,
        callback: Callable[[TrackingPoint], Any],
        on_resync: Callable[[], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> SubscriptionHandle:
        """
        Receive points appended after this call. History is not replayed.
        """
        if self._channel is None:
            raise RuntimeError("Live update channel is not configured for this store")
        return await self._channel.subscribe(load_id, callback, on_resync=on_resync, on_error=on_error)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _announce(self, point: TrackingPoint) -> None:
        """Publish the insert. The point is already durable, so failures only get logged."""
        if self._publisher is None or point.load_id is None:
            return

        event = TrackingPointInserted(load_id=point.load_id, point=point)
        try:
            receivers = await self._publisher.publish(
                tracking_channel(point.load_id),
                event.to_json(),
            )
        except (RedisError, OSError) as e:
            await log_warning(f"Insert event for load {point.load_id} not published: {e}")
            return

        await log_debug(f"Tracking point {point.id} published to {receivers} subscriber(s)")

    @classmethod
    async def _stored_point(cls, load_id: UUID, draft: PointDraft, row: dict[str, Any] | None) -> TrackingPoint:
        """Point as written. A malformed RETURNING row is logged; the insert already committed."""
        row = row or {}
        try:
            return TrackingPoint.model_validate(row)
        except ValidationError as e:
            await log_error(
                f"Malformed tracking row returned after insert for load {load_id}: {e}",
                extra={"row_id": str(row.get("id"))},
            )

        # Answer from the draft; only the datastore id is taken from the row
        return await cls._validate_row(
            TrackingPoint,
            {
                **draft.model_dump(exclude={"created_at"}),
                "id": row.get("id"),
                "load_id": load_id,
                "created_at": draft.created_at or datetime.now(timezone.utc),
            },
            WRITE_FAILURE_MESSAGE,
        )

    @staticmethod
    async def _validate_row(model: type, row: dict[str, Any], failure_message: str) -> Any:
        try:
            return model.model_validate(row)
        except ValidationError as e:
            await log_error(
                f"Malformed {model.__name__} row from datastore: {e}",
                extra={"row_id": str(row.get("id"))},
            )
            raise PersistenceFailure(failure_message) from e
