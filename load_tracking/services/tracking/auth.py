# load_tracking/services/tracking/auth.py
"""
Ingest credential check.
"""

from __future__ import annotations

import hmac

from load_tracking.common.errors import ServiceUnavailable, Unauthorized


INGEST_NOT_CONFIGURED_MESSAGE = "Tracking ingest not configured"


def verify_ingest_key(provided: str | None, expected: str | None) -> None:
    """
    Compare the caller's shared secret with the configured one in constant time.

    Raises:
        ServiceUnavailable: no secret configured on the server
        Unauthorized: secret missing or wrong
    """
    if not expected:
        raise ServiceUnavailable(INGEST_NOT_CONFIGURED_MESSAGE)

    if not provided:
        raise Unauthorized()

    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthorized()
