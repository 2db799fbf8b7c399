# load_tracking/common/callbacks.py
"""Helpers for subscriber callbacks that may be plain functions or coroutines."""

from __future__ import annotations

import inspect
from typing import Any, Callable


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback. None is a no-op."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
