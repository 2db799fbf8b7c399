# load_tracking/services/tracking/routes.py
"""
HTTP routes:
- POST /tracking/ingest: telemetry from devices (shared secret)
- GET /tracking/{load_id}: load summary and ordered points
- POST /loads/{load_id}/tracking: manual update from the dashboard
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from load_tracking.common.errors import InvalidRequest
from load_tracking.config.loader import Settings
from load_tracking.services.tracking.auth import verify_ingest_key
from load_tracking.services.tracking.dependencies import (
    get_app_settings,
    get_ingest_service,
    get_operator_context,
    get_query_service,
)
from load_tracking.services.tracking.service import TrackingIngestService, TrackingQueryService
from load_tracking.shared.models.common import ErrorResponse
from load_tracking.shared.models.tracking import (
    OperatorContext,
    parse_ingest_payload,
    parse_manual_update,
)

router = APIRouter(tags=["Tracking"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Malformed request"},
    401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
    404: {"model": ErrorResponse, "description": "Load not found"},
    422: {"model": ErrorResponse, "description": "Validation failed"},
    500: {"model": ErrorResponse, "description": "Service or datastore failure"},
}


def _parse_load_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as e:
        raise InvalidRequest("Invalid load id") from e


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidRequest("Invalid JSON body") from e


@router.post("/tracking/ingest", responses=ERROR_RESPONSES)
async def ingest_tracking(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    service: TrackingIngestService = Depends(get_ingest_service),
) -> dict[str, Any]:
    # Credential first: a rejected caller never reaches parsing or the store
    verify_ingest_key(
        request.headers.get(settings.tracking.INGEST_API_KEY_HEADER),
        settings.tracking.TRACKING_INGEST_API_KEY,
    )

    payload = parse_ingest_payload(await _read_json(request))
    await service.ingest(payload)
    return {"success": True}


@router.get("/tracking/{load_id}", responses=ERROR_RESPONSES)
async def get_tracking(
    load_id: str,
    settings: Settings = Depends(get_app_settings),
    service: TrackingQueryService = Depends(get_query_service),
) -> JSONResponse:
    snapshot = await service.get_snapshot(_parse_load_id(load_id))
    return JSONResponse(
        content=snapshot.to_response(),
        headers={"Cache-Control": f"private, max-age={settings.tracking.QUERY_CACHE_SECONDS}"},
    )


@router.post("/loads/{load_id}/tracking", responses=ERROR_RESPONSES)
async def add_manual_tracking(
    load_id: str,
    request: Request,
    operator: OperatorContext = Depends(get_operator_context),
    service: TrackingIngestService = Depends(get_ingest_service),
) -> dict[str, Any]:
    load_uuid = _parse_load_id(load_id)
    update = parse_manual_update(await _read_json(request))

    point, load = await service.record_manual_update(load_uuid, update, operator)
    return {
        "success": True,
        "point": point.to_public(),
        "message": f"Tracking update added for Load {load.load_number}",
    }
