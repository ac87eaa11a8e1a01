"""Layout Coordinator - public entry point of the layout engine.

This module provides:
- LayoutCoordinator: resolves each new snapshot to positions via the
  last-known map, the two cache tiers, or a versioned worker request
- Manual drag integration writing straight into the live position map
- Subscriptions for the rendering layer and a diagnostics channel

Architecture Decision:
    - Every submitted snapshot takes a fresh, strictly increasing request id;
      a worker response is applied only if it answers the latest one
    - The live position map is owned here; readers get copies
    - Worker failure degrades to a synchronous grid placement that is never
      cached, reported on the diagnostics channel
    - Dragged nodes are pinned: their dragged position overrides worker output
      in every later merge until reset()

Usage:
    coordinator = LayoutCoordinator(worker, cache)
    unsubscribe = coordinator.subscribe(render)

    task = coordinator.submit(snapshot)   # None if resolved synchronously
    if task is not None:
        await task
"""

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from graphlayout.config.settings import LayoutSettings, load_settings
from graphlayout.core.layout_cache import LayoutCacheStore, create_layout_cache, filter_to_snapshot
from graphlayout.layout.tree_layout import compute_fallback_layout
from graphlayout.layout.workers import LayoutWorker, LayoutWorkerError, create_worker
from graphlayout.models.graph_snapshot import GraphSnapshot
from graphlayout.models.layout_metadata import (
    LayoutRequest,
    LayoutResponse,
    NodePosition,
    PositionMap,
    SessionLayout,
)

logger = logging.getLogger(__name__)

PositionsCallback = Callable[[PositionMap], None]
DiagnosticCallback = Callable[["LayoutDiagnostic"], None]

MAX_RECENT_DIAGNOSTICS = 50


@dataclass(frozen=True)
class LayoutDiagnostic:
    """Non-blocking report of a degraded layout.

    Attributes:
        code: Machine-readable reason (e.g., WORKER_FALLBACK)
        message: Human-readable detail
        fingerprint: Snapshot the diagnostic concerns
        request_id: Request the diagnostic concerns
        level: Logging level name
    """

    code: str
    message: str
    fingerprint: Optional[str] = None
    request_id: Optional[int] = None
    level: str = "warning"

    def to_dict(self) -> Dict[str, object]:
        return {
            "code": self.code,
            "message": self.message,
            "fingerprint": self.fingerprint,
            "request_id": self.request_id,
            "level": self.level,
        }


class LayoutCoordinator:
    """Resolves snapshots to positions and owns the live position map.

    Must be driven from a single event loop thread. Worker passes and durable
    cache reads run as tasks on that loop; nothing here blocks it.
    """

    def __init__(
        self,
        worker: LayoutWorker,
        cache: LayoutCacheStore,
        width: float = 1200.0,
        height: float = 800.0,
        on_diagnostic: Optional[DiagnosticCallback] = None,
    ):
        """Initialize the coordinator.

        Args:
            worker: Backend computing layouts off the event loop
            cache: Two-tier fingerprint -> positions store
            width: Canvas width fed into spacing
            height: Canvas height fed into spacing
            on_diagnostic: Optional diagnostics handler
        """
        _check_canvas(width, height)
        self._worker = worker
        self._cache = cache
        self._width = float(width)
        self._height = float(height)

        self._latest_request_id = 0
        self._snapshot: Optional[GraphSnapshot] = None
        self._fingerprint: Optional[str] = None

        # Live map and the fingerprint it was resolved for
        self._live: PositionMap = {}
        self._live_fingerprint: Optional[str] = None
        # Live map came from the grid fallback and must not short-circuit a retry
        self._degraded = False

        self._pinned: PositionMap = {}
        self._dragging: Set[str] = set()

        self._subscribers: List[PositionsCallback] = []
        self._diagnostic_handlers: List[DiagnosticCallback] = []
        if on_diagnostic is not None:
            self._diagnostic_handlers.append(on_diagnostic)
        self._recent_diagnostics: Deque[LayoutDiagnostic] = deque(maxlen=MAX_RECENT_DIAGNOSTICS)

        self._tasks: Set[asyncio.Task] = set()
        self.worker_dispatches = 0

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def latest_request_id(self) -> int:
        return self._latest_request_id

    @property
    def fingerprint(self) -> Optional[str]:
        """Fingerprint of the most recently submitted snapshot."""
        return self._fingerprint

    @property
    def snapshot(self) -> Optional[GraphSnapshot]:
        return self._snapshot

    @property
    def cache(self) -> LayoutCacheStore:
        return self._cache

    @property
    def worker(self) -> LayoutWorker:
        return self._worker

    @property
    def canvas_size(self) -> Tuple[float, float]:
        return (self._width, self._height)

    @property
    def pinned_ids(self) -> Set[str]:
        return set(self._pinned)

    @property
    def pending(self) -> int:
        """Number of unfinished resolution tasks."""
        return len(self._tasks)

    def get_position(self, node_id: str) -> Optional[NodePosition]:
        return self._live.get(node_id)

    def positions(self) -> PositionMap:
        """Copy of the live position map."""
        return dict(self._live)

    def recent_diagnostics(self) -> List[LayoutDiagnostic]:
        return list(self._recent_diagnostics)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, on_positions_changed: PositionsCallback) -> Callable[[], None]:
        """Register a callback receiving a copy of the live map on every change.

        Returns:
            Callable that removes the subscription (idempotent)
        """
        self._subscribers.append(on_positions_changed)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(on_positions_changed)
            except ValueError:
                pass

        return unsubscribe

    def add_diagnostic_handler(self, handler: DiagnosticCallback) -> Callable[[], None]:
        """Register a diagnostics handler. Returns an unsubscribe callable."""
        self._diagnostic_handlers.append(handler)

        def remove() -> None:
            try:
                self._diagnostic_handlers.remove(handler)
            except ValueError:
                pass

        return remove

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(dict(self._live))
            except Exception:
                logger.exception(f"Position subscriber {callback!r} failed")

    def _emit_diagnostic(self, diagnostic: LayoutDiagnostic) -> None:
        self._recent_diagnostics.append(diagnostic)
        for handler in list(self._diagnostic_handlers):
            try:
                handler(diagnostic)
            except Exception:
                logger.exception(f"Diagnostic handler {handler!r} failed")

    # =========================================================================
    # Snapshot resolution
    # =========================================================================

    def _next_request_id(self) -> int:
        self._latest_request_id += 1
        return self._latest_request_id

    def _apply(self, positions: PositionMap, persist: bool, degraded: bool = False) -> None:
        """Make ``positions`` the live map for the current snapshot."""
        snapshot = self._snapshot
        if snapshot is None:
            return
        node_ids = snapshot.node_ids()
        merged = {
            node_id: pos
            for node_id, pos in positions.items()
            if node_id in node_ids and pos.is_finite
        }
        for node_id, pos in self._pinned.items():
            if node_id in node_ids:
                merged[node_id] = pos

        self._live = merged
        self._live_fingerprint = self._fingerprint
        self._degraded = degraded
        if persist and merged:
            self._cache.put(self._fingerprint, merged)
        self._notify()

    def _complete_hit(self, positions: Optional[PositionMap]) -> bool:
        """Apply a cached map if it places every node of the current snapshot."""
        snapshot = self._snapshot
        filtered = filter_to_snapshot(positions, snapshot)
        if filtered is None or len(filtered) != len(snapshot.node_ids()):
            return False
        self._apply(filtered, persist=False)
        return True

    def _seed_positions(self, snapshot: GraphSnapshot) -> PositionMap:
        return filter_to_snapshot(self._live, snapshot) or {}

    def submit(self, snapshot: GraphSnapshot) -> Optional[asyncio.Task]:
        """Resolve positions for a new snapshot.

        Checks the last-known map and the memory tier synchronously. On a miss
        schedules a task that consults the durable tier and then the worker.

        Args:
            snapshot: Node/link set that should now be visible

        Returns:
            None if positions were applied synchronously, otherwise the task
            resolving the snapshot (it never raises for worker failures)
        """
        fingerprint = snapshot.fingerprint()
        request_id = self._next_request_id()
        self._snapshot = snapshot
        self._fingerprint = fingerprint

        if not snapshot.nodes:
            self._apply({}, persist=False)
            return None

        if (
            fingerprint == self._live_fingerprint
            and not self._degraded
            and self._complete_hit(self._live)
        ):
            logger.debug(f"Request {request_id}: last-known positions reused for {fingerprint}")
            return None

        if self._complete_hit(self._cache.get_memory(fingerprint)):
            logger.debug(f"Request {request_id}: memory cache hit for {fingerprint}")
            return None

        seeds = self._seed_positions(snapshot)
        return self._spawn(self._resolve(request_id, snapshot, fingerprint, seeds))

    async def _resolve(
        self,
        request_id: int,
        snapshot: GraphSnapshot,
        fingerprint: str,
        seeds: PositionMap,
    ) -> bool:
        cached = await self._cache.get_async(fingerprint)
        if request_id != self._latest_request_id:
            logger.debug(f"Request {request_id} superseded during cache lookup")
            return False
        if self._complete_hit(cached):
            logger.debug(f"Request {request_id}: durable cache hit for {fingerprint}")
            return True

        request = LayoutRequest.for_snapshot(
            request_id,
            snapshot,
            seed_positions=seeds,
            width=self._width,
            height=self._height,
            fingerprint=fingerprint,
        )
        return await self._dispatch(request)

    async def _dispatch(self, request: LayoutRequest) -> bool:
        """Run the worker for ``request`` and apply the result if still current."""
        self.worker_dispatches += 1
        try:
            response = await self._worker.compute(request)
        except LayoutWorkerError as e:
            return self._fall_back(request, e)
        return self.receive_response(response)

    def _fall_back(self, request: LayoutRequest, error: LayoutWorkerError) -> bool:
        logger.warning(
            f"Layout worker failed for request {request.request_id}, using grid fallback: {error}"
        )
        self._emit_diagnostic(
            LayoutDiagnostic(
                code="WORKER_FALLBACK",
                message=str(error),
                fingerprint=request.fingerprint,
                request_id=request.request_id,
            )
        )
        if request.request_id != self._latest_request_id:
            return False
        fallback = compute_fallback_layout(request)
        self._apply(fallback.positions, persist=False, degraded=True)
        return True

    def receive_response(self, response: LayoutResponse) -> bool:
        """Apply a worker response unless a newer request superseded it.

        Returns:
            True if applied, False if discarded as stale
        """
        if response.request_id != self._latest_request_id:
            logger.debug(
                f"Discarding stale response {response.request_id} "
                f"(latest is {self._latest_request_id})"
            )
            return False
        self._apply(response.positions, persist=True)
        return True

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Layout resolution failed: {error!r}", exc_info=error)

    async def wait_idle(self) -> None:
        """Wait until no resolution task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Re-dispatch
    # =========================================================================

    def _redispatch(self) -> Optional[asyncio.Task]:
        snapshot = self._snapshot
        if snapshot is None or not snapshot.nodes:
            return None
        request = LayoutRequest.for_snapshot(
            self._next_request_id(),
            snapshot,
            seed_positions=self._seed_positions(snapshot),
            width=self._width,
            height=self._height,
            fingerprint=self._fingerprint,
        )
        return self._spawn(self._dispatch(request))

    def set_canvas_size(self, width: float, height: float) -> Optional[asyncio.Task]:
        """Change the canvas size and lay the current snapshot out again.

        Canvas size is not part of the fingerprint, so the caches are skipped.

        Raises:
            ValueError: If a dimension is not a positive finite number
        """
        _check_canvas(width, height)
        if (float(width), float(height)) == (self._width, self._height):
            return None
        self._width = float(width)
        self._height = float(height)
        logger.debug(f"Canvas resized to {self._width}x{self._height}")
        return self._redispatch()

    def relayout(self) -> Optional[asyncio.Task]:
        """Force a worker pass for the current snapshot."""
        return self._redispatch()

    def reset(self) -> None:
        """Forget the current snapshot, live map and pins.

        In-flight responses become stale.
        """
        self._next_request_id()
        self._snapshot = None
        self._fingerprint = None
        self._live = {}
        self._live_fingerprint = None
        self._degraded = False
        self._pinned.clear()
        self._dragging.clear()
        self._notify()

    # =========================================================================
    # Drag integration
    # =========================================================================

    def _is_visible(self, node_id: str) -> bool:
        return self._snapshot is not None and node_id in self._snapshot.node_ids()

    def begin_drag(self, node_id: str) -> bool:
        """Start dragging a node of the current snapshot."""
        if not self._is_visible(node_id):
            logger.debug(f"Ignoring drag of unknown node {node_id!r}")
            return False
        self._dragging.add(node_id)
        current = self._live.get(node_id)
        if current is not None:
            self._pinned[node_id] = current
        return True

    def update_drag(self, node_id: str, x: float, y: float) -> bool:
        """Move a node in the live map and notify subscribers."""
        if not self._is_visible(node_id):
            return False
        position = NodePosition(x=x, y=y)
        if not position.is_finite:
            logger.debug(f"Ignoring non-finite drag position for {node_id!r}")
            return False
        self._dragging.add(node_id)
        self._pinned[node_id] = position
        self._live[node_id] = position
        self._notify()
        return True

    def end_drag(self, node_id: str) -> bool:
        """Finish a drag and persist the live map under the current fingerprint.

        A live map from the grid fallback is not persisted; the pin carries the
        dragged position into the next worker result instead.
        """
        was_dragging = node_id in self._dragging
        self._dragging.discard(node_id)
        if not was_dragging or self._fingerprint is None:
            return False
        if self._degraded:
            logger.debug(f"Not caching drag of {node_id!r} over a fallback layout")
        elif self._live_fingerprint == self._fingerprint and self._live:
            self._cache.put(self._fingerprint, self._live)
        return True

    # =========================================================================
    # Session layouts
    # =========================================================================

    def restore_session_layout(self, fingerprint: str, positions: PositionMap) -> bool:
        """Apply a saved layout if it belongs to the current snapshot.

        The filtered layout supersedes any in-flight request and is written to
        both cache tiers.
        """
        if self._snapshot is None or fingerprint != self._fingerprint:
            logger.debug(f"Session layout {fingerprint} does not match current snapshot")
            return False
        filtered = filter_to_snapshot(positions, self._snapshot)
        if filtered is None:
            return False
        self._next_request_id()
        self._apply(filtered, persist=True)
        logger.info(f"Restored session layout {fingerprint} ({len(filtered)} positions)")
        return True

    def export_session_layout(self) -> Optional[SessionLayout]:
        if self._fingerprint is None or self._live_fingerprint != self._fingerprint:
            return None
        return SessionLayout(fingerprint=self._fingerprint, positions=dict(self._live))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def aclose(self) -> None:
        """Wait for running tasks, then release the worker and the cache."""
        await self.wait_idle()
        self._worker.shutdown()
        self._cache.close()


def _check_canvas(width: float, height: float) -> None:
    for name, value in (("width", width), ("height", height)):
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
            raise ValueError(f"Canvas {name} must be a positive number, got {value!r}")


def create_coordinator(
    settings: Optional[LayoutSettings] = None,
    on_diagnostic: Optional[DiagnosticCallback] = None,
) -> LayoutCoordinator:
    """Build a coordinator from settings (default: GRAPH_LAYOUT_* environment variables)."""
    settings = settings or load_settings()
    cache = create_layout_cache(
        max_entries=settings.memory_cache_size,
        cache_dir=settings.cache_dir if settings.durable_cache else None,
    )
    return LayoutCoordinator(
        worker=create_worker(settings),
        cache=cache,
        width=settings.canvas_width,
        height=settings.canvas_height,
        on_diagnostic=on_diagnostic,
    )


__all__ = [
    "LayoutDiagnostic",
    "LayoutCoordinator",
    "create_coordinator",
]
