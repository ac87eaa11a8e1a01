"""Fallback grid packer for nodes the tree pass cannot place.

Nodes outside the structural forest (isolated nodes, nodes reached only by
reference links, nodes caught in structural cycles) keep a finite seed
position if they have one; otherwise they get the next cell of a column-major
grid in a region to the right of the tree. The cell counter advances for every
packed node, seeded or not, so a node's cell does not shift when another
node gains a seed.

The same packer, with no tree, is the degraded mode the coordinator falls back
to when a worker is unavailable.
"""

from typing import Iterable, Mapping, Optional

from graphlayout.models.layout_metadata import NodePosition, PositionMap

# Spacing shared with the tree pass
NODE_WIDTH = 180.0
NODE_HEIGHT = 50.0
MARGIN_X = 100.0
MARGIN_Y = 50.0


def pack_nodes(
    node_ids: Iterable[str],
    seeds: Optional[Mapping[str, NodePosition]],
    height: float,
    start_x: float = MARGIN_X,
) -> PositionMap:
    """Place nodes on a column-major grid starting at ``start_x``.

    Args:
        node_ids: Nodes to place, in traversal order
        seeds: Known positions; finite ones are reused
        height: Canvas height; a column wraps past ``height - MARGIN_Y``
        start_x: Left edge of the reserved region

    Returns:
        Position for every node id
    """
    seeds = seeds or {}
    positions: PositionMap = {}
    offset_x = start_x
    offset_y = MARGIN_Y
    bottom = max(height - MARGIN_Y, MARGIN_Y)

    for node_id in node_ids:
        if node_id in positions:
            continue
        seed = seeds.get(node_id)
        if seed is not None and seed.is_finite:
            positions[node_id] = seed
        else:
            positions[node_id] = NodePosition(x=offset_x, y=offset_y)

        offset_y += NODE_HEIGHT
        if offset_y > bottom:
            offset_y = MARGIN_Y
            offset_x += NODE_WIDTH

    return positions


__all__ = ["NODE_WIDTH", "NODE_HEIGHT", "MARGIN_X", "MARGIN_Y", "pack_nodes"]
