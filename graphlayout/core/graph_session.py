"""Graph session: projection inputs plus the coordinator they feed.

A session owns the hierarchy, the expanded container ids, the view mode and
the highlight predicate. Every mutation re-projects and submits the new
snapshot to its LayoutCoordinator.
"""

import asyncio
import logging
from typing import Any, Dict, FrozenSet, Iterable, Optional

from graphlayout.converters.hierarchy_projector import (
    AGGREGATE_SUFFIX,
    HierarchyProjector,
    HighlightPredicate,
    ViewMode,
    paths_highlighter,
)
from graphlayout.core.coordinator import LayoutCoordinator
from graphlayout.models.graph_snapshot import GraphSnapshot
from graphlayout.models.hierarchy import Hierarchy
from graphlayout.models.layout_metadata import SessionLayout

logger = logging.getLogger(__name__)


class GraphSession:
    """Interactive state of one graph view.

    Example:
        session = GraphSession(coordinator)
        await session.wait(session.set_hierarchy(hierarchy))
        await session.wait(session.expand("src/core"))
        positions = session.coordinator.positions()
    """

    def __init__(
        self,
        coordinator: LayoutCoordinator,
        projector: Optional[HierarchyProjector] = None,
    ):
        self.coordinator = coordinator
        self.projector = projector or HierarchyProjector()
        self._hierarchy: Optional[Hierarchy] = None
        self._expanded: set = set()
        self._view_mode = ViewMode.STRUCTURAL
        self._highlight: Optional[HighlightPredicate] = None
        self._snapshot: Optional[GraphSnapshot] = None

    @property
    def hierarchy(self) -> Optional[Hierarchy]:
        return self._hierarchy

    @property
    def expanded_ids(self) -> FrozenSet[str]:
        return frozenset(self._expanded)

    @property
    def view_mode(self) -> ViewMode:
        return self._view_mode

    @property
    def snapshot(self) -> Optional[GraphSnapshot]:
        """Snapshot of the last projection."""
        return self._snapshot

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self._expanded

    @staticmethod
    async def wait(task: Optional[asyncio.Task]) -> None:
        """Await a task returned by a mutation, if there is one."""
        if task is not None:
            await task

    # =========================================================================
    # Projection
    # =========================================================================

    def refresh(self) -> Optional[asyncio.Task]:
        """Re-project the current inputs and submit the snapshot."""
        if self._hierarchy is None:
            return None
        self._snapshot = self.projector.project(
            self._hierarchy,
            self._expanded,
            self._view_mode,
            self._highlight,
        )
        return self.coordinator.submit(self._snapshot)

    def set_hierarchy(self, hierarchy: Hierarchy) -> Optional[asyncio.Task]:
        """Load a new hierarchy with only its root expanded.

        Positions and pins of the previous hierarchy are dropped.
        """
        self._hierarchy = hierarchy
        self._expanded = {hierarchy.root.id}
        self.coordinator.reset()
        logger.info(f"Loaded hierarchy rooted at {hierarchy.root.path!r}")
        return self.refresh()

    def update_hierarchy(self, hierarchy: Hierarchy) -> Optional[asyncio.Task]:
        """Replace the hierarchy (e.g., after fetching children) keeping view state."""
        if self._hierarchy is None or not self._expanded:
            return self.set_hierarchy(hierarchy)
        self._hierarchy = hierarchy
        return self.refresh()

    # =========================================================================
    # Expansion
    # =========================================================================

    @staticmethod
    def _container_id(node_id: str) -> str:
        """Aggregate ids stand for their collapsed container."""
        if node_id.endswith(AGGREGATE_SUFFIX):
            return node_id[: -len(AGGREGATE_SUFFIX)]
        return node_id

    def expand(self, node_id: str) -> Optional[asyncio.Task]:
        """Expand a container. No-op if it already is."""
        node_id = self._container_id(node_id)
        if node_id in self._expanded:
            return None
        self._expanded.add(node_id)
        return self.refresh()

    def collapse(self, node_id: str) -> Optional[asyncio.Task]:
        """Collapse a container. No-op if it is not expanded."""
        node_id = self._container_id(node_id)
        if node_id not in self._expanded:
            return None
        self._expanded.discard(node_id)
        return self.refresh()

    def toggle(self, node_id: str) -> Optional[asyncio.Task]:
        node_id = self._container_id(node_id)
        if node_id in self._expanded:
            return self.collapse(node_id)
        return self.expand(node_id)

    # =========================================================================
    # View options
    # =========================================================================

    def set_view_mode(self, view_mode: ViewMode) -> Optional[asyncio.Task]:
        """Switch view mode.

        Raises:
            ValueError: If view_mode is not a known mode
        """
        view_mode = ViewMode(view_mode)
        if view_mode is self._view_mode:
            return None
        self._view_mode = view_mode
        return self.refresh()

    def set_highlight(self, highlight: Optional[HighlightPredicate]) -> Optional[asyncio.Task]:
        """Set the highlight predicate. The fingerprint is unaffected."""
        self._highlight = highlight
        return self.refresh()

    def highlight_paths(self, paths: Iterable[str]) -> Optional[asyncio.Task]:
        paths = [p for p in paths if p]
        return self.set_highlight(paths_highlighter(paths) if paths else None)

    # =========================================================================
    # Persistence
    # =========================================================================

    def export_state(self) -> Dict[str, Any]:
        """Serializable view state plus the current layout, if resolved."""
        layout = self.coordinator.export_session_layout()
        return {
            "expanded_ids": sorted(self._expanded),
            "view_mode": self._view_mode.value,
            "layout": layout.to_dict() if layout is not None else None,
        }

    def restore_state(self, state: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Restore exported view state onto the loaded hierarchy.

        The saved layout is applied only if its fingerprint matches the
        re-projected snapshot.

        Raises:
            ValueError: If no hierarchy is loaded or the state is malformed
        """
        if self._hierarchy is None:
            raise ValueError("Cannot restore state before a hierarchy is loaded")

        view_mode = ViewMode(state.get("view_mode", ViewMode.STRUCTURAL.value))
        expanded = state.get("expanded_ids")
        if expanded is None:
            expanded = [self._hierarchy.root.id]
        if isinstance(expanded, str) or not isinstance(expanded, Iterable):
            raise ValueError("expanded_ids must be a list of node ids")

        self._view_mode = view_mode
        self._expanded = set(expanded)
        task = self.refresh()

        raw_layout = state.get("layout")
        if raw_layout:
            layout = SessionLayout.model_validate(raw_layout)
            if self.coordinator.restore_session_layout(layout.fingerprint, layout.positions):
                return None
            logger.info(f"Saved layout {layout.fingerprint} no longer matches, recomputing")
        return task


__all__ = ["GraphSession"]
