# load_tracking/shared/models/common.py
"""
Models shared by every service.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """One violated field of a request body."""

    path: list[str | int] = Field(default_factory=list)
    message: str
    code: str


class ErrorResponse(BaseModel):
    """Structured error body."""

    error: str
    issues: list[ValidationIssue] | None = None

    def to_content(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class HealthStatus(BaseModel):
    """Service health."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    # dependencies: {"postgres": "healthy", "redis": "healthy"}
