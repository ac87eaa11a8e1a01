"""Layout metadata: node positions and the layout worker wire messages.

This module provides schemas for:
- Node positions (x, y coordinates) and position maps keyed by node id
- Bounding boxes over a position map
- LayoutRequest / LayoutResponse, the only messages that cross the worker boundary
- SessionLayout, the layout part of a saved session

Architecture Decision:
    - Positions are valid only for the snapshot whose fingerprint produced them
    - Durable form is {node_id: {"x": float, "y": float}}
    - Wire messages are frozen and serialize to single-line JSON
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from graphlayout.models.graph_snapshot import GraphSnapshot, Link, Node

logger = logging.getLogger(__name__)


class NodePosition(BaseModel):
    """Position of a single node in 2D layout space.

    Attributes:
        x: Horizontal coordinate
        y: Vertical coordinate
    """

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Horizontal coordinate")
    y: float = Field(..., description="Vertical coordinate")

    @classmethod
    def from_list(cls, pos: List[float]) -> "NodePosition":
        """Create NodePosition from [x, y] list.

        Raises:
            ValueError: If pos doesn't have exactly 2 elements
        """
        if len(pos) != 2:
            raise ValueError(f"Position must be [x, y], got {len(pos)} elements")
        return cls(x=pos[0], y=pos[1])

    def to_list(self) -> List[float]:
        return [self.x, self.y]

    @property
    def is_finite(self) -> bool:
        """True unless either coordinate is NaN or infinite."""
        return math.isfinite(self.x) and math.isfinite(self.y)


# node id -> position, partial while a layout is in flight
PositionMap = Dict[str, NodePosition]


class BoundingBox(BaseModel):
    """Bounding box of a position map."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return (
            (self.min_x + self.max_x) / 2,
            (self.min_y + self.max_y) / 2
        )

    @classmethod
    def from_positions(cls, positions: Mapping[str, NodePosition]) -> "BoundingBox":
        """Compute bounding box from node positions.

        Raises:
            ValueError: If positions is empty
        """
        if not positions:
            raise ValueError("Cannot compute bounding box from empty positions")

        x_coords = [pos.x for pos in positions.values()]
        y_coords = [pos.y for pos in positions.values()]

        return cls(
            min_x=min(x_coords),
            max_x=max(x_coords),
            min_y=min(y_coords),
            max_y=max(y_coords)
        )


def positions_to_dict(positions: Mapping[str, NodePosition]) -> Dict[str, Dict[str, float]]:
    """Serialize a position map to its durable form, sorted by node id."""
    return {
        node_id: {"x": pos.x, "y": pos.y}
        for node_id, pos in sorted(positions.items())
    }


def positions_from_dict(data: Mapping[str, Any]) -> PositionMap:
    """Parse a durable position map.

    Accepts {id: {"x", "y"}} and the older {id: [x, y]} form. Entries that
    cannot be parsed are skipped.
    """
    positions: PositionMap = {}
    for node_id, raw in data.items():
        try:
            if isinstance(raw, (list, tuple)):
                positions[str(node_id)] = NodePosition.from_list(list(raw))
            elif isinstance(raw, dict):
                positions[str(node_id)] = NodePosition(x=raw["x"], y=raw["y"])
            elif isinstance(raw, NodePosition):
                positions[str(node_id)] = raw
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping unparseable position for {node_id!r}: {raw!r}")
    return positions


# =============================================================================
# Worker wire messages
# =============================================================================


class LayoutRequest(BaseModel):
    """A versioned request for the layout worker.

    Attributes:
        request_id: Monotonically increasing per coordinator
        fingerprint: Fingerprint of the snapshot being laid out
        nodes: Snapshot nodes
        links: Snapshot links
        seed_positions: Previously known positions (partial)
        width: Canvas width fed into spacing
        height: Canvas height fed into spacing
    """

    model_config = ConfigDict(frozen=True)

    request_id: int = Field(..., ge=0)
    fingerprint: str = ""
    nodes: List[Node] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    seed_positions: Dict[str, NodePosition] = Field(default_factory=dict)
    width: float = Field(default=1200.0, gt=0)
    height: float = Field(default=800.0, gt=0)

    @classmethod
    def for_snapshot(
        cls,
        request_id: int,
        snapshot: GraphSnapshot,
        seed_positions: Optional[Mapping[str, NodePosition]] = None,
        width: float = 1200.0,
        height: float = 800.0,
        fingerprint: Optional[str] = None,
    ) -> "LayoutRequest":
        return cls(
            request_id=request_id,
            fingerprint=fingerprint if fingerprint is not None else snapshot.fingerprint(),
            nodes=list(snapshot.nodes),
            links=list(snapshot.links),
            seed_positions=dict(seed_positions or {}),
            width=width,
            height=height,
        )


class LayoutResponse(BaseModel):
    """The worker's answer to a LayoutRequest."""

    model_config = ConfigDict(frozen=True)

    request_id: int = Field(..., ge=0)
    fingerprint: str = ""
    positions: Dict[str, NodePosition] = Field(default_factory=dict)
    elapsed_ms: float = 0.0


class SessionLayout(BaseModel):
    """Layout saved with a session, applied only to a snapshot with the same fingerprint."""

    fingerprint: str
    positions: Dict[str, NodePosition] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "positions": positions_to_dict(self.positions),
        }


__all__ = [
    "NodePosition",
    "PositionMap",
    "BoundingBox",
    "positions_to_dict",
    "positions_from_dict",
    "LayoutRequest",
    "LayoutResponse",
    "SessionLayout",
]
