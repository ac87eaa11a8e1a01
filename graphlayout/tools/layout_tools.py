"""MCP tools for interactive graph layout.

Provides tools to:
- Load a source hierarchy and expand/collapse its containers
- Switch between structural, semantic and combined views
- Read live node positions and move nodes by hand
- Save and restore a session's view state with its layout
- Inspect cache and worker statistics

Architecture Decision:
    - One GraphSession per server; every mutation resolves through its coordinator
    - Mutating tools wait for the layout by default so callers see final positions
    - Positions use the durable form {node_id: {x, y}}
"""

import logging
from typing import Any, Dict, List, Optional

from mcp import Tool
from pydantic import ValidationError

from ..core.coordinator import LayoutCoordinator, create_coordinator
from ..core.graph_session import GraphSession
from ..core.layout_cache import FileLayoutStore
from ..converters.hierarchy_projector import ViewMode
from ..models.hierarchy import Hierarchy
from ..models.layout_metadata import BoundingBox, positions_to_dict
from ..utils.response import error_response, success_response

logger = logging.getLogger(__name__)

_WAIT_PROPERTY = {
    "type": "boolean",
    "description": "Wait for the layout to settle before returning",
    "default": True
}

_NODE_ID_PROPERTY = {
    "type": "string",
    "description": "Node id (directory/file path, aggregate id, or symbol id)"
}


class LayoutTools:
    """Provides interactive layout tools over a GraphSession."""

    def __init__(self, session: Optional[GraphSession] = None):
        """Initialize with a graph session.

        Args:
            session: Session to drive (created from settings if not provided)
        """
        self._session = session

    @property
    def session(self) -> GraphSession:
        """Lazy initialization of the session and its coordinator."""
        if self._session is None:
            self._session = GraphSession(create_coordinator())
        return self._session

    @property
    def coordinator(self) -> LayoutCoordinator:
        return self.session.coordinator

    def get_tools(self) -> List[Tool]:
        """Return layout MCP tools."""
        return [
            Tool(
                name="layout_load_hierarchy",
                description="Load a source hierarchy (directory/file tree plus optional semantic links and missing dependencies) with only the root expanded, and lay it out.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "hierarchy": {
                            "type": "object",
                            "description": "{root: {path, type, children, has_children, descendant_count, symbols}, semantic_links: [...], missing_dependencies: [...]}"
                        },
                        "keep_view_state": {
                            "type": "boolean",
                            "description": "Keep expanded containers (e.g., after fetching more children)",
                            "default": False
                        },
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["hierarchy"]
                }
            ),
            Tool(
                name="layout_expand",
                description="Expand a container (or the container behind an aggregate node) and lay out the result",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "node_id": _NODE_ID_PROPERTY,
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["node_id"]
                }
            ),
            Tool(
                name="layout_collapse",
                description="Collapse a container into an aggregate node and lay out the result",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "node_id": _NODE_ID_PROPERTY,
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["node_id"]
                }
            ),
            Tool(
                name="layout_toggle",
                description="Expand a collapsed container or collapse an expanded one",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "node_id": _NODE_ID_PROPERTY,
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["node_id"]
                }
            ),
            Tool(
                name="layout_set_view_mode",
                description="Switch between the structural tree, the semantic (import/call) graph, or both",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "view_mode": {
                            "type": "string",
                            "enum": [mode.value for mode in ViewMode],
                            "description": "View mode"
                        },
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["view_mode"]
                }
            ),
            Tool(
                name="layout_get_positions",
                description="Get the live position of every visible node, with the snapshot fingerprint and bounding box",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "include_nodes": {
                            "type": "boolean",
                            "description": "Include node kind/label/depth for each position",
                            "default": False
                        }
                    }
                }
            ),
            Tool(
                name="layout_get_position",
                description="Get the live position of one node",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "node_id": _NODE_ID_PROPERTY
                    },
                    "required": ["node_id"]
                }
            ),
            Tool(
                name="layout_move_node",
                description="Move a node by hand. The node stays pinned and the layout is remembered for this graph shape.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "node_id": _NODE_ID_PROPERTY,
                        "x": {"type": "number"},
                        "y": {"type": "number"}
                    },
                    "required": ["node_id", "x", "y"]
                }
            ),
            Tool(
                name="layout_relayout",
                description="Recompute the layout of the current graph, optionally for a new canvas size",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "width": {"type": "number", "description": "Canvas width"},
                        "height": {"type": "number", "description": "Canvas height"},
                        "wait": _WAIT_PROPERTY
                    }
                }
            ),
            Tool(
                name="layout_export_session",
                description="Export expanded containers, view mode and current layout for later restore",
                inputSchema={
                    "type": "object",
                    "properties": {}
                }
            ),
            Tool(
                name="layout_restore_session",
                description="Restore an exported session onto the loaded hierarchy. The saved layout is reused only if the graph shape still matches.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "state": {
                            "type": "object",
                            "description": "Output of layout_export_session"
                        },
                        "wait": _WAIT_PROPERTY
                    },
                    "required": ["state"]
                }
            ),
            Tool(
                name="layout_cache_stats",
                description="Get layout cache statistics, worker backend info and recent diagnostics",
                inputSchema={
                    "type": "object",
                    "properties": {}
                }
            ),
        ]

    async def handle_tool(self, name: str, arguments: dict) -> dict:
        """Route tool call to appropriate handler.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Standardized response
        """
        handlers = {
            "layout_load_hierarchy": self._load_hierarchy,
            "layout_expand": self._expand,
            "layout_collapse": self._collapse,
            "layout_toggle": self._toggle,
            "layout_set_view_mode": self._set_view_mode,
            "layout_get_positions": self._get_positions,
            "layout_get_position": self._get_position,
            "layout_move_node": self._move_node,
            "layout_relayout": self._relayout,
            "layout_export_session": self._export_session,
            "layout_restore_session": self._restore_session,
            "layout_cache_stats": self._cache_stats,
        }

        handler = handlers.get(name)
        if not handler:
            return error_response(f"Unknown layout tool: {name}", code="UNKNOWN_TOOL")

        try:
            return await handler(arguments or {})
        except KeyError as e:
            return error_response(f"Missing required argument: {e}", code="INVALID_ARGUMENTS")
        except Exception as e:
            logger.error(f"Error in {name}: {e}", exc_info=True)
            return error_response(str(e), code="TOOL_ERROR")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_hierarchy(self) -> Optional[dict]:
        if self.session.hierarchy is None:
            return error_response(
                "No hierarchy loaded. Call layout_load_hierarchy first.",
                code="NO_HIERARCHY"
            )
        return None

    async def _settle(self, task, args: dict) -> None:
        """Wait for a mutation's layout unless the caller opted out."""
        if task is not None and args.get("wait", True):
            await task
            await self.coordinator.wait_idle()

    def _state_summary(self) -> Dict[str, Any]:
        session = self.session
        snapshot = session.snapshot
        positions = self.coordinator.positions()
        return {
            "fingerprint": self.coordinator.fingerprint,
            "request_id": self.coordinator.latest_request_id,
            "view_mode": session.view_mode.value,
            "expanded_ids": sorted(session.expanded_ids),
            "node_count": len(snapshot.nodes) if snapshot else 0,
            "link_count": len(snapshot.links) if snapshot else 0,
            "positioned_count": len(positions),
            "pending": self.coordinator.pending,
        }

    async def _mutation(self, task, args: dict) -> dict:
        await self._settle(task, args)
        return success_response(self._state_summary())

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _load_hierarchy(self, args: dict) -> dict:
        """Load a hierarchy into the session."""
        try:
            hierarchy = Hierarchy.model_validate(args["hierarchy"])
        except ValidationError as e:
            return error_response(
                f"Invalid hierarchy: {e.error_count()} validation errors",
                code="INVALID_HIERARCHY",
                details={"errors": e.errors(include_url=False, include_context=False, include_input=False)}
            )

        if args.get("keep_view_state", False):
            task = self.session.update_hierarchy(hierarchy)
        else:
            task = self.session.set_hierarchy(hierarchy)
        return await self._mutation(task, args)

    async def _expand(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        return await self._mutation(self.session.expand(args["node_id"]), args)

    async def _collapse(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        return await self._mutation(self.session.collapse(args["node_id"]), args)

    async def _toggle(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        return await self._mutation(self.session.toggle(args["node_id"]), args)

    async def _set_view_mode(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        try:
            view_mode = ViewMode(args["view_mode"])
        except ValueError:
            return error_response(
                f"Unknown view mode: {args['view_mode']}",
                code="INVALID_VIEW_MODE",
                details={"available": [mode.value for mode in ViewMode]}
            )
        return await self._mutation(self.session.set_view_mode(view_mode), args)

    async def _get_positions(self, args: dict) -> dict:
        """Get all live positions."""
        positions = self.coordinator.positions()
        data: Dict[str, Any] = {
            "fingerprint": self.coordinator.fingerprint,
            "positions": positions_to_dict(positions),
            "bounding_box": (
                BoundingBox.from_positions(positions).model_dump() if positions else None
            ),
            "pinned": sorted(self.coordinator.pinned_ids),
        }

        if args.get("include_nodes", False) and self.session.snapshot is not None:
            data["nodes"] = {
                node.id: {
                    "kind": node.kind.value,
                    "label": node.label,
                    "depth": node.depth,
                    "highlighted": node.highlighted,
                }
                for node in self.session.snapshot.nodes
            }

        warnings = []
        if self.coordinator.pending:
            warnings.append("A layout is still in progress; positions may change")
        return success_response(data, warnings=warnings)

    async def _get_position(self, args: dict) -> dict:
        node_id = args["node_id"]
        position = self.coordinator.get_position(node_id)
        if position is None:
            return error_response(f"No position for node {node_id}", code="NODE_NOT_FOUND")
        return success_response({"node_id": node_id, "x": position.x, "y": position.y})

    async def _move_node(self, args: dict) -> dict:
        """Full drag: begin, one movement, release."""
        node_id = args["node_id"]
        if not self.coordinator.begin_drag(node_id):
            return error_response(f"Node {node_id} is not visible", code="NODE_NOT_FOUND")

        moved = self.coordinator.update_drag(node_id, float(args["x"]), float(args["y"]))
        self.coordinator.end_drag(node_id)
        if not moved:
            return error_response("Position must be finite", code="INVALID_POSITION")

        position = self.coordinator.get_position(node_id)
        return success_response({
            "node_id": node_id,
            "x": position.x,
            "y": position.y,
            "fingerprint": self.coordinator.fingerprint,
        })

    async def _relayout(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error

        width = args.get("width")
        height = args.get("height")
        task = None
        if width is not None or height is not None:
            current_width, current_height = self.coordinator.canvas_size
            task = self.coordinator.set_canvas_size(
                float(width if width is not None else current_width),
                float(height if height is not None else current_height),
            )
        if task is None:
            task = self.coordinator.relayout()
        return await self._mutation(task, args)

    async def _export_session(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        return success_response(self.session.export_state())

    async def _restore_session(self, args: dict) -> dict:
        error = self._require_hierarchy()
        if error:
            return error
        try:
            task = self.session.restore_state(args["state"])
        except ValidationError as e:
            return error_response(
                f"Invalid session layout: {e.error_count()} validation errors",
                code="INVALID_SESSION"
            )
        except ValueError as e:
            return error_response(str(e), code="INVALID_SESSION")

        await self._settle(task, args)
        summary = self._state_summary()
        saved = (args["state"].get("layout") or {}).get("fingerprint")
        summary["layout_restored"] = saved is not None and saved == self.coordinator.fingerprint
        return success_response(summary)

    async def _cache_stats(self, args: dict) -> dict:
        cache = self.coordinator.cache
        durable = cache.durable
        data = {
            "memory_entries": len(cache),
            "max_entries": cache.max_entries,
            "durable": (
                str(durable.directory) if isinstance(durable, FileLayoutStore)
                else (type(durable).__name__ if durable is not None else None)
            ),
            "stats": cache.stats.to_dict(),
            "worker": {
                "backend": self.coordinator.worker.name,
                "units": self.coordinator.worker.unit_count,
                "dispatches": self.coordinator.worker_dispatches,
            },
            "diagnostics": [d.to_dict() for d in self.coordinator.recent_diagnostics()],
        }
        return success_response(data)
