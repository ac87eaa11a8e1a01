"""Value objects for the layout engine.

Snapshots (nodes, links, typed payloads) describe topology only; positions,
position maps and worker wire messages live in layout_metadata.
"""

from .graph_snapshot import (
    NodeKind,
    LinkKind,
    REFERENCE_LINK_KINDS,
    ContainerPayload,
    LeafPayload,
    AggregatePayload,
    ExternalPayload,
    Node,
    Link,
    GraphSnapshot,
)
from .layout_metadata import (
    NodePosition,
    PositionMap,
    BoundingBox,
    positions_to_dict,
    positions_from_dict,
    LayoutRequest,
    LayoutResponse,
    SessionLayout,
)
from .hierarchy import (
    SymbolNode,
    SourceNode,
    SemanticLink,
    MissingDependency,
    Hierarchy,
)

__all__ = [
    # Snapshot
    "NodeKind",
    "LinkKind",
    "REFERENCE_LINK_KINDS",
    "ContainerPayload",
    "LeafPayload",
    "AggregatePayload",
    "ExternalPayload",
    "Node",
    "Link",
    "GraphSnapshot",

    # Positions and wire messages
    "NodePosition",
    "PositionMap",
    "BoundingBox",
    "positions_to_dict",
    "positions_from_dict",
    "LayoutRequest",
    "LayoutResponse",
    "SessionLayout",

    # Source hierarchy
    "SymbolNode",
    "SourceNode",
    "SemanticLink",
    "MissingDependency",
    "Hierarchy",
]
