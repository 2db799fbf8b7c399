# load_tracking/services/tracking/service.py
"""
Tracking business logic: telemetry ingest, operator updates, snapshot queries.
"""

from __future__ import annotations

import asyncio
from uuid import UUID

from load_tracking.common.constants import TypeMsg
from load_tracking.common.errors import NotFound, PersistenceFailure
from load_tracking.common.logger import log_info
from load_tracking.services.tracking.store import WRITE_FAILURE_MESSAGE, TrackingPointStore
from load_tracking.shared.models.tracking import (
    IngestPayload,
    LoadSummary,
    ManualTrackingUpdate,
    OperatorContext,
    PointDraft,
    TrackingPoint,
    TrackingSnapshot,
)


class TrackingIngestService:
    def __init__(self, store: TrackingPointStore):
        self.store = store

    async def ingest(self, payload: IngestPayload) -> TrackingPoint:
        """
        Append one telemetry report to its load.

        Raises:
            NotFound: unknown load
            PersistenceFailure: datastore failure
        """
        try:
            load = await self.store.get_load(payload.load_id)
        except PersistenceFailure as e:
            raise PersistenceFailure(WRITE_FAILURE_MESSAGE) from e

        if load is None:
            raise NotFound()

        point = await self.store.append(
            load.id,
            PointDraft(
                status=payload.status,
                latitude=payload.latitude,
                longitude=payload.longitude,
                location=payload.location,
                notes=payload.notes,
                created_at=payload.timestamp,
            ),
        )

        await log_info(
            f"Telemetry ingested for load {load.load_number}: {point.status} ({point.id})",
            type_msg=TypeMsg.INFO,
        )
        return point

    async def record_manual_update(
        self,
        load_id: UUID,
        update: ManualTrackingUpdate,
        operator: OperatorContext,
    ) -> tuple[TrackingPoint, LoadSummary]:
        """
        Append an operator's update and move the load to the new status if it changed.

        Raises:
            NotFound: load absent or outside the operator's scope
        """
        load = await self.store.get_load_for_operator(load_id, operator)
        if load is None:
            raise NotFound()

        point = await self.store.append(
            load.id,
            PointDraft(
                status=update.status,
                latitude=update.latitude,
                longitude=update.longitude,
                location=update.location,
                notes=update.notes,
                updated_by=operator.user_id,
            ),
        )

        if update.status.value != load.status:
            await self.store.update_load_status(load.id, update.status)

        await log_info(
            f"Manual tracking update on load {load.load_number} by {operator.user_id} ({operator.role})",
            type_msg=TypeMsg.INFO,
        )
        return point, load


class TrackingQueryService:
    def __init__(self, store: TrackingPointStore):
        self.store = store

    async def get_snapshot(self, load_id: UUID) -> TrackingSnapshot:
        """
        Load summary and ordered points.

        Raises:
            NotFound: unknown load
            PersistenceFailure: datastore failure
        """
        load, points = await asyncio.gather(
            self.store.get_load(load_id),
            self.store.list_ordered(load_id),
        )
        if load is None:
            raise NotFound()
        return TrackingSnapshot(summary=load, points=points)
