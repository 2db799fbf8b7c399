# load_tracking/common/errors.py
"""
Error taxonomy of the tracking services.
Each error carries the HTTP status and the public message returned to callers.
"""

from __future__ import annotations

from typing import Any


class TrackingError(Exception):
    """Base class. `message` is safe to expose; internal detail goes to the logs."""

    status_code: int = 500
    message: str = "Internal error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidPayload(TrackingError):
    """Request body failed validation. `issues` lists every violated field."""

    status_code = 422
    message = "Invalid payload"

    def __init__(self, issues: list[dict[str, Any]] | None = None, message: str | None = None) -> None:
        self.issues = issues or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "issues": self.issues}


class InvalidRequest(TrackingError):
    """Malformed request that is not a field-level validation failure."""

    status_code = 400
    message = "Bad request"


class Unauthorized(TrackingError):
    status_code = 401
    message = "Unauthorized"


class NotFound(TrackingError):
    status_code = 404
    message = "Load not found"


class ServiceUnavailable(TrackingError):
    """Required configuration or dependency is missing."""

    status_code = 500
    message = "Service unavailable"


class PersistenceFailure(TrackingError):
    """Datastore write/read failed or returned a malformed row."""

    status_code = 500
    message = "Failed to persist telemetry"


class ChannelDisconnect(TrackingError):
    """Live channel lost its connection. Transient; followed by a resync."""

    status_code = 503
    message = "Live channel disconnected"
