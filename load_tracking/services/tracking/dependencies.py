# load_tracking/services/tracking/dependencies.py
"""
FastAPI dependencies. Clients live on app.state, created in the lifespan.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, Request

from load_tracking.common.constants import OperatorRole
from load_tracking.common.errors import Unauthorized
from load_tracking.config.loader import Settings
from load_tracking.infra.database import DatabaseManager
from load_tracking.infra.redis_client import RedisClient
from load_tracking.services.tracking.repository import TrackingRepository
from load_tracking.services.tracking.service import TrackingIngestService, TrackingQueryService
from load_tracking.services.tracking.store import TrackingPointStore
from load_tracking.shared.models.tracking import OperatorContext


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> DatabaseManager:
    return request.app.state.db


def get_redis_client(request: Request) -> RedisClient | None:
    return getattr(request.app.state, "redis", None)


def get_tracking_store(request: Request) -> TrackingPointStore:
    repository = TrackingRepository(get_database(request))
    return TrackingPointStore(repository, publisher=get_redis_client(request))


def get_ingest_service(store: TrackingPointStore = Depends(get_tracking_store)) -> TrackingIngestService:
    return TrackingIngestService(store)


def get_query_service(store: TrackingPointStore = Depends(get_tracking_store)) -> TrackingQueryService:
    return TrackingQueryService(store)


def get_operator_context(
    x_user_id: str | None = Header(default=None),
    x_company_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> OperatorContext:
    """
    Caller identity set by the upstream session provider.
    Anything missing or malformed is treated as unauthenticated.
    """
    if not (x_user_id and x_company_id and x_user_role):
        raise Unauthorized()
    try:
        return OperatorContext(
            user_id=UUID(x_user_id),
            company_id=UUID(x_company_id),
            role=OperatorRole(x_user_role),
        )
    except ValueError as e:
        raise Unauthorized() from e
