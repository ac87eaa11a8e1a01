"""Hybrid tree/grid layout computed by the layout workers.

Algorithm:
    1. Build a forest from structural links only. Each node keeps its first
       structural parent; later parents are ignored. Nodes with no parent and
       at least one child are roots. Several roots hang under a virtual root
       that is never emitted.
    2. Tidy horizontal tree: x grows with tree depth, y comes from an in-order
       walk over the leaves scaled to the canvas height. Parents sit midway
       between their first and last child. Container and aggregate leaves get
       extra separation from their neighbours, and so do leaves whose parents
       differ.
    3. Everything the tree does not reach goes through the grid packer in a
       region to the right of the tree (see packer.py).
    4. One position per input node id; links to unknown ids are ignored.

Every call builds its own LayoutContext. Nothing survives between calls, so
the function is safe to run in any worker thread or process.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional

import networkx as nx

from graphlayout.layout.packer import MARGIN_X, MARGIN_Y, NODE_HEIGHT, NODE_WIDTH, pack_nodes
from graphlayout.models.graph_snapshot import LinkKind, Node
from graphlayout.models.layout_metadata import (
    LayoutRequest,
    LayoutResponse,
    NodePosition,
    PositionMap,
)

logger = logging.getLogger(__name__)

# Not a str, so it can never collide with a node id
VIRTUAL_ROOT = ("__virtual_root__",)

# Leaf separation, in slots: (same parent, different parent)
LEAF_SEPARATION = (1.0, 1.5)
CONTAINER_SEPARATION = (1.5, 2.0)


@dataclass
class LayoutContext:
    """Per-call working state of a layout pass.

    Attributes:
        nodes_by_id: Input nodes, first occurrence of each id
        order: Node ids in input order
        forest: Structural forest (edges parent -> child)
        seeds: Finite seed positions
        width: Canvas width
        height: Canvas height
    """

    nodes_by_id: Dict[str, Node]
    order: List[str]
    forest: nx.DiGraph
    seeds: PositionMap = field(default_factory=dict)
    width: float = 1200.0
    height: float = 800.0
    ignored_links: int = 0

    @classmethod
    def from_request(cls, request: LayoutRequest) -> "LayoutContext":
        nodes_by_id: Dict[str, Node] = {}
        order: List[str] = []
        for node in request.nodes:
            if node.id not in nodes_by_id:
                nodes_by_id[node.id] = node
                order.append(node.id)

        forest = nx.DiGraph()
        forest.add_nodes_from(order)
        ignored = 0
        for link in request.links:
            if link.kind != LinkKind.STRUCTURAL:
                continue
            if link.source not in nodes_by_id or link.target not in nodes_by_id:
                ignored += 1
                continue
            if link.source == link.target or forest.in_degree(link.target) > 0:
                continue
            forest.add_edge(link.source, link.target)

        seeds = {
            node_id: pos
            for node_id, pos in request.seed_positions.items()
            if node_id in nodes_by_id and pos.is_finite
        }

        return cls(
            nodes_by_id=nodes_by_id,
            order=order,
            forest=forest,
            seeds=seeds,
            width=request.width,
            height=request.height,
            ignored_links=ignored,
        )

    def roots(self) -> List[str]:
        return [
            node_id
            for node_id in self.order
            if self.forest.in_degree(node_id) == 0 and self.forest.out_degree(node_id) > 0
        ]

    def parent(self, node_id: Hashable) -> Optional[Hashable]:
        for parent in self.forest.predecessors(node_id):
            return parent
        return None


@dataclass
class TreeResult:
    """Output of the tree pass."""

    positions: PositionMap
    tree_width: float
    has_tree: bool


def _separation(context: LayoutContext, previous: str, current: str) -> float:
    same_parent = context.parent(previous) == context.parent(current)
    container = (
        context.nodes_by_id[previous].is_container_like
        or context.nodes_by_id[current].is_container_like
    )
    same, different = CONTAINER_SEPARATION if container else LEAF_SEPARATION
    return same if same_parent else different


def layout_tree(context: LayoutContext) -> TreeResult:
    """Run the tree pass over the structural forest."""
    roots = context.roots()
    if not roots:
        return TreeResult(positions={}, tree_width=0.0, has_tree=False)

    if len(roots) == 1:
        top: Hashable = roots[0]
        tree = context.forest
    else:
        top = VIRTUAL_ROOT
        tree = context.forest.copy()
        for root_id in roots:
            tree.add_edge(VIRTUAL_ROOT, root_id)

    preorder = list(nx.dfs_preorder_nodes(tree, top))

    depth: Dict[Hashable, int] = {top: -1 if top is VIRTUAL_ROOT else 0}
    for node_id in preorder:
        for child in tree.successors(node_id):
            depth[child] = depth[node_id] + 1

    # In-order leaf slots
    slot: Dict[Hashable, float] = {}
    cursor = 0.0
    previous_leaf: Optional[str] = None
    leaf_count = 0
    for node_id in preorder:
        if tree.out_degree(node_id) > 0:
            continue
        if previous_leaf is not None:
            cursor += _separation(context, previous_leaf, node_id)
        slot[node_id] = cursor
        previous_leaf = node_id
        leaf_count += 1

    for node_id in reversed(preorder):
        children = list(tree.successors(node_id))
        if children:
            slot[node_id] = (slot[children[0]] + slot[children[-1]]) / 2

    span = cursor
    tree_height = max(context.height - 2 * MARGIN_Y, leaf_count * NODE_HEIGHT)
    max_depth = max(depth[node_id] for node_id in preorder if node_id is not VIRTUAL_ROOT)
    tree_width = max(context.width - 2 * MARGIN_X, (max_depth + 1) * NODE_WIDTH)

    positions: PositionMap = {}
    for node_id in preorder:
        if node_id is VIRTUAL_ROOT:
            continue
        if span > 0:
            y = MARGIN_Y + slot[node_id] / span * tree_height
        else:
            y = MARGIN_Y + tree_height / 2
        positions[node_id] = NodePosition(x=MARGIN_X + depth[node_id] * NODE_WIDTH, y=y)

    return TreeResult(positions=positions, tree_width=tree_width, has_tree=True)


def compute_positions(context: LayoutContext) -> PositionMap:
    """Tree pass plus fallback packing; one position per node id."""
    tree = layout_tree(context)
    positions = dict(tree.positions)

    leftovers = [node_id for node_id in context.order if node_id not in positions]
    if leftovers:
        start_x = tree.tree_width + MARGIN_X if tree.has_tree else MARGIN_X
        positions.update(pack_nodes(leftovers, context.seeds, context.height, start_x))

    return positions


def compute_layout(request: LayoutRequest) -> LayoutResponse:
    """Lay out one request. Never raises on a finite node/link set."""
    started = time.perf_counter()
    context = LayoutContext.from_request(request)
    positions = compute_positions(context)
    elapsed_ms = (time.perf_counter() - started) * 1000

    if context.ignored_links:
        logger.debug(f"Request {request.request_id}: ignored {context.ignored_links} malformed links")
    logger.debug(
        f"Request {request.request_id}: {len(positions)} positions in {elapsed_ms:.1f}ms"
    )
    return LayoutResponse(
        request_id=request.request_id,
        fingerprint=request.fingerprint,
        positions=positions,
        elapsed_ms=elapsed_ms,
    )


def compute_fallback_layout(request: LayoutRequest) -> LayoutResponse:
    """Grid-only placement used when no worker is available."""
    context = LayoutContext.from_request(request)
    positions = pack_nodes(context.order, context.seeds, context.height)
    return LayoutResponse(
        request_id=request.request_id,
        fingerprint=request.fingerprint,
        positions=positions,
    )


__all__ = [
    "LayoutContext",
    "TreeResult",
    "layout_tree",
    "compute_positions",
    "compute_layout",
    "compute_fallback_layout",
]
