# load_tracking/web_client/sync.py
"""
Viewer-side tracking state.

TrackingSynchronizer opens the live subscription, seeds the session from a
full snapshot and merges live inserts into it. Points are kept in created_at
order (equal timestamps keep arrival order) and deduplicated by id. Channel
errors and reconnects trigger a full refetch that replaces the local state.

Lifecycle:
    sync = TrackingSynchronizer(load_id, TrackingClient(), RemoteLiveChannel())
    sync.on_change(render)
    await sync.start()
    ...
    sync.close()
"""

from __future__ import annotations

import asyncio
import bisect
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

from load_tracking.common.errors import TrackingError
from load_tracking.common.logger import log_debug, log_warning
from load_tracking.shared.models.tracking import LoadSummary, TrackingPoint, TrackingSnapshot


class SyncPhase(str, Enum):
    SEEDING = "seeding"
    SUBSCRIBED = "subscribed"
    RESYNCHRONIZING = "resynchronizing"
    ERROR = "error"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TrackingState:
    """Immutable view handed to renderers."""
    load_id: UUID
    summary: Optional[LoadSummary] = None
    points: tuple[TrackingPoint, ...] = ()
    loading: bool = False
    error: Optional[str] = None
    phase: SyncPhase = SyncPhase.SEEDING
    live: bool = False


class SnapshotSource(Protocol):
    async def get_snapshot(self, load_id: UUID, *, force: bool = False) -> TrackingSnapshot: ...


class LiveSource(Protocol):
    async def subscribe(
        self,
        load_id: UUID,
        on_insert: Callable[[TrackingPoint], Any],
        on_resync: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Any: ...


StateListener = Callable[[TrackingState], None]


class TrackingSynchronizer:
    """
    One viewing session of one load.

    Args:
        load_id: Load being viewed
        source: Full snapshot fetcher (TrackingClient or TrackingQueryService adapter)
        channel: Live insert source (RemoteLiveChannel or LiveUpdateChannel)
        initial: Snapshot delivered with the page; skips the first fetch
    """

    def __init__(
        self,
        load_id: UUID,
        source: SnapshotSource,
        channel: LiveSource,
        *,
        initial: Optional[TrackingSnapshot] = None,
    ) -> None:
        self.load_id = load_id
        self._source = source
        self._channel = channel
        self._initial = initial

        self._points: list[TrackingPoint] = []
        self._ids: set[UUID] = set()
        self._state = TrackingState(load_id=load_id, loading=initial is None)
        self._listeners: list[StateListener] = []

        self._handle: Any = None
        self._closed = False
        self._resync_task: Optional[asyncio.Task] = None
        self._resync_requested = False
        self._starting = False
        # Inserts seen while a fetch is in flight
        self._in_flight: Optional[list[TrackingPoint]] = None

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def on_change(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for state snapshots. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> TrackingState:
        """
        Open the live subscription, then seed the state.

        Inserts delivered while the seed fetch is in flight are merged on top of
        the snapshot. Resync signals received before seeding ends are deferred to
        one refetch afterwards.
        """
        self._starting = True
        try:
            return await self._start()
        finally:
            self._starting = False
            if self._resync_requested and not self._closed:
                self._resync_requested = False
                self._schedule_resync()

    async def _start(self) -> TrackingState:
        fetch = self._initial is None
        if fetch:
            self._in_flight = []
            self._update(loading=True)
        else:
            self._replace(self._initial)
            self._initial = None
            self._update(loading=False)

        handle = await self._channel.subscribe(
            self.load_id,
            self._handle_insert,
            on_resync=self._handle_resync,
            on_error=self._handle_error,
        )
        if self._closed:
            # close() ran while the handshake was pending
            handle.unsubscribe()
            return self._state

        self._handle = handle
        self._update(live=bool(getattr(handle, "connected", True)))
        await log_debug(f"Tracking session for load {self.load_id} subscribed")

        if fetch:
            try:
                snapshot = await self._source.get_snapshot(self.load_id)
            except TrackingError as e:
                self._in_flight = None
                if self._closed:
                    return self._state
                await log_warning(f"Initial tracking fetch for load {self.load_id} failed: {e.message}")
                self._update(loading=False, error=e.message, phase=SyncPhase.ERROR)
                return self._state

            if self._closed:
                return self._state
            self._apply(snapshot)
            self._update(loading=False, error=None)

        if self._state.phase == SyncPhase.SEEDING:
            self._update(phase=SyncPhase.SUBSCRIBED)
        return self._state

    def close(self) -> None:
        """Unsubscribe and stop all state updates. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        handle, self._handle = self._handle, None
        if handle is not None:
            handle.unsubscribe()

        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
        self._resync_task = None
        self._in_flight = None

        self._state = replace(self._state, phase=SyncPhase.CLOSED, live=False, loading=False)
        self._listeners.clear()

    async def resync(self) -> TrackingState:
        """Refetch the full history, bypassing the cache, and replace local state."""
        if self._closed:
            return self._state

        self._in_flight = []
        self._update(phase=SyncPhase.RESYNCHRONIZING)
        try:
            snapshot = await self._source.get_snapshot(self.load_id, force=True)
        except TrackingError as e:
            self._in_flight = None
            if self._closed:
                return self._state
            await log_warning(f"Tracking resync for load {self.load_id} failed: {e.message}")
            self._update(phase=SyncPhase.ERROR, error=e.message, loading=False)
            return self._state

        if self._closed:
            return self._state

        self._apply(snapshot)
        self._update(phase=SyncPhase.SUBSCRIBED, error=None, loading=False)
        return self._state

    # =========================================================================
    # CHANNEL CALLBACKS
    # =========================================================================

    def _handle_insert(self, point: TrackingPoint) -> None:
        if self._closed:
            return
        if point.load_id is not None and point.load_id != self.load_id:
            return
        if self._in_flight is not None:
            self._in_flight.append(point)
        if self._merge(point):
            self._publish()

    def _handle_resync(self) -> None:
        if self._closed:
            return
        self._update(live=True)
        self._schedule_resync()

    def _handle_error(self, error: Exception) -> None:
        if self._closed:
            return
        self._update(live=False)
        self._schedule_resync()

    def _schedule_resync(self) -> None:
        if self._starting or (self._resync_task is not None and not self._resync_task.done()):
            # Coalesce; runs once after start() or after the running refetch
            self._resync_requested = True
            return
        self._resync_task = asyncio.get_running_loop().create_task(self._resync_loop())

    async def _resync_loop(self) -> None:
        while not self._closed:
            self._resync_requested = False
            await self.resync()
            if not self._resync_requested:
                return

    # =========================================================================
    # STATE
    # =========================================================================

    def _merge(self, point: TrackingPoint) -> bool:
        """Insert a point in created_at order. Returns False for duplicates."""
        if point.id in self._ids:
            return False
        if point.load_id is None:
            point = point.model_copy(update={"load_id": self.load_id})
        index = bisect.bisect_right(self._points, point.created_at, key=lambda p: p.created_at)
        self._points.insert(index, point)
        self._ids.add(point.id)
        return True

    def _replace(self, snapshot: TrackingSnapshot) -> None:
        self._points = []
        self._ids = set()
        # Already ordered by the API; merging keeps the invariant regardless
        for point in snapshot.points:
            self._merge(point)
        self._state = replace(self._state, summary=snapshot.summary)

    def _apply(self, snapshot: TrackingSnapshot) -> None:
        """Replace local state with a snapshot, keeping inserts that arrived during the fetch."""
        arrived, self._in_flight = self._in_flight or [], None
        self._replace(snapshot)
        for point in arrived:
            self._merge(point)

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        self._publish()

    def _publish(self) -> None:
        if self._closed:
            return
        self._state = replace(self._state, points=tuple(self._points))
        for listener in list(self._listeners):
            listener(self._state)
