# load_tracking/services/tracking/repository.py
"""
SQL access to loads and load_tracking.
Returns plain dicts; validation happens in the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from load_tracking.infra.database import DatabaseManager


_POINT_COLUMNS = "id, load_id, status, latitude, longitude, location, notes, updated_by, created_at"
_LOAD_COLUMNS = "id, load_number, status, company_id, assigned_driver_id"


class TrackingRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_load(self, load_id: UUID) -> dict[str, Any] | None:
        """Load record by id."""
        row = await self.db.fetchrow(
            f"SELECT {_LOAD_COLUMNS} FROM loads WHERE id = $1",
            load_id,
        )
        return dict(row) if row else None

    async def get_load_for_operator(
        self,
        load_id: UUID,
        company_id: UUID,
        driver_id: UUID | None = None,
    ) -> dict[str, Any] | None:
        """
        Load record visible to an operator.
        Drivers only see loads assigned to them.
        """
        query = f"SELECT {_LOAD_COLUMNS} FROM loads WHERE id = $1 AND company_id = $2"
        args: list[Any] = [load_id, company_id]
        if driver_id is not None:
            query += " AND assigned_driver_id = $3"
            args.append(driver_id)

        row = await self.db.fetchrow(query, *args)
        return dict(row) if row else None

    async def insert_point(
        self,
        load_id: UUID,
        status: str,
        latitude: float | None,
        longitude: float | None,
        location: str | None,
        notes: str | None,
        created_at: datetime | None = None,
        updated_by: UUID | None = None,
    ) -> dict[str, Any]:
        """Append one point. created_at defaults to insert time."""
        row = await self.db.fetchrow(
            f"""
            INSERT INTO load_tracking
                (load_id, status, latitude, longitude, location, notes, updated_by, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, COALESCE($8, NOW()))
            RETURNING {_POINT_COLUMNS}
            """,
            load_id, status, latitude, longitude, location, notes, updated_by, created_at,
        )
        return dict(row)

    async def list_points(self, load_id: UUID) -> list[dict[str, Any]]:
        """All points of a load, oldest first; seq breaks created_at ties."""
        rows = await self.db.fetch(
            f"""
            SELECT {_POINT_COLUMNS}
            FROM load_tracking
            WHERE load_id = $1
            ORDER BY created_at ASC, seq ASC
            """,
            load_id,
        )
        return [dict(row) for row in rows]

    async def update_load_status(self, load_id: UUID, status: str) -> None:
        await self.db.execute(
            "UPDATE loads SET status = $1, updated_at = NOW() WHERE id = $2",
            status, load_id,
        )
