"""Graph snapshot schemas: the node/link set handed to the layout engine.

This module provides the value objects exchanged between the projector, the
coordinator and the layout workers:
- Node / Link (frozen value objects)
- Typed node payloads as a discriminated union keyed by ``kind``
- GraphSnapshot (the pair of node set and link set)

Architecture Principle:
    Topology only. Coordinates never live on a node; they live in the
    coordinator's position map and are keyed by node id. A node's id is stable
    for as long as the entity it stands for is unchanged.
"""

import logging
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Set, Union

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    """Kinds of node that can appear in a snapshot."""

    CONTAINER = "container"
    LEAF = "leaf"
    AGGREGATE = "aggregate"
    EXTERNAL = "external"


class LinkKind(str, Enum):
    """Kinds of directed link between two nodes of a snapshot."""

    STRUCTURAL = "structural"
    IMPORT = "import"
    CALL = "call"
    DEPENDENCY = "dependency"


# Reference (semantic) link kinds, the ones a semantic view keeps
REFERENCE_LINK_KINDS = frozenset({LinkKind.IMPORT, LinkKind.CALL})


# =============================================================================
# Node payloads
# =============================================================================


class ContainerPayload(BaseModel):
    """Payload of a container (directory) node."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["container"] = "container"
    path: str = ""
    has_children: bool = False
    descendant_count: Optional[int] = Field(
        default=None, ge=0, description="Precomputed number of descendants, if known"
    )


class LeafPayload(BaseModel):
    """Payload of a leaf node (a file, or a symbol parsed out of a file)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["leaf"] = "leaf"
    path: str = ""
    symbol_type: Optional[str] = Field(
        default=None, description="function/class/variable/api_endpoint for symbols"
    )


class AggregatePayload(BaseModel):
    """Payload of a synthetic node standing in for a collapsed subtree."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["aggregate"] = "aggregate"
    target_id: str = Field(..., description="Id of the collapsed subtree root")
    hidden_count: int = Field(default=0, ge=0, description="Number of hidden descendants")


class ExternalPayload(BaseModel):
    """Payload of a placeholder for a dependency that is missing from the project."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["external"] = "external"
    dependency_type: str = "service"
    required_by: List[str] = Field(default_factory=list)


NodePayload = Annotated[
    Union[ContainerPayload, LeafPayload, AggregatePayload, ExternalPayload],
    Field(discriminator="kind"),
]


# =============================================================================
# Node / Link
# =============================================================================


class Node(BaseModel):
    """A node of a graph snapshot.

    Attributes:
        id: Globally unique within a snapshot
        kind: Node kind (container, leaf, aggregate, external)
        depth: Depth in the source hierarchy (root = 0)
        label: Display name
        highlighted: Set by the projector's highlight predicate
        payload: Kind-specific data, optional for bare nodes
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    kind: NodeKind = NodeKind.LEAF
    depth: int = Field(default=0, ge=0)
    label: str = ""
    highlighted: bool = False
    payload: Optional[NodePayload] = None

    @property
    def is_container_like(self) -> bool:
        """Containers and aggregates need more room than plain leaves."""
        return self.kind in (NodeKind.CONTAINER, NodeKind.AGGREGATE)

    @property
    def descendant_count(self) -> int:
        """Number of descendants this node represents, read from its payload."""
        payload = self.payload
        if payload is None:
            return 0
        if isinstance(payload, ContainerPayload):
            return payload.descendant_count or 0
        if isinstance(payload, AggregatePayload):
            return payload.hidden_count
        if isinstance(payload, (LeafPayload, ExternalPayload)):
            return 0
        raise TypeError(f"Unknown node payload: {type(payload).__name__}")

    @property
    def aggregate_target(self) -> Optional[str]:
        """Id of the collapsed subtree root for aggregate nodes, else None."""
        payload = self.payload
        if payload is None:
            return None
        if isinstance(payload, AggregatePayload):
            return payload.target_id
        if isinstance(payload, (ContainerPayload, LeafPayload, ExternalPayload)):
            return None
        raise TypeError(f"Unknown node payload: {type(payload).__name__}")


class Link(BaseModel):
    """Directed link between two node ids of the same snapshot.

    Several kinds may coexist between the same endpoints; each is a distinct link.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    kind: LinkKind = LinkKind.STRUCTURAL

    @property
    def key(self) -> str:
        """Composite key ``kind:source->target``."""
        return f"{self.kind.value}:{self.source}->{self.target}"


# =============================================================================
# Snapshot
# =============================================================================


class GraphSnapshot(BaseModel):
    """The node/link set to lay out at one point in time.

    Two snapshots are equivalent for caching iff their fingerprints match;
    object identity and ordering do not matter.
    """

    model_config = ConfigDict(frozen=True)

    nodes: List[Node] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)

    def node_ids(self) -> Set[str]:
        return {node.id for node in self.nodes}

    def nodes_by_id(self) -> Dict[str, Node]:
        result: Dict[str, Node] = {}
        for node in self.nodes:
            result.setdefault(node.id, node)
        return result

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def fingerprint(self) -> str:
        """Order-independent content key of this snapshot."""
        from graphlayout.core.fingerprint import fingerprint_snapshot

        return fingerprint_snapshot(self)

    def to_networkx(self) -> nx.MultiDiGraph:
        """Build a MultiDiGraph with one edge per link, keyed by link kind.

        Links whose endpoints are not both in the node set are skipped.
        """
        graph = nx.MultiDiGraph()
        for node in self.nodes:
            graph.add_node(node.id, kind=node.kind.value, depth=node.depth, label=node.label)

        skipped = 0
        for link in self.links:
            if link.source not in graph or link.target not in graph:
                skipped += 1
                continue
            graph.add_edge(link.source, link.target, key=link.kind.value, kind=link.kind.value)

        if skipped:
            logger.debug(f"Skipped {skipped} links with unknown endpoints")
        return graph

    def __len__(self) -> int:
        return len(self.nodes)


__all__ = [
    "NodeKind",
    "LinkKind",
    "REFERENCE_LINK_KINDS",
    "ContainerPayload",
    "LeafPayload",
    "AggregatePayload",
    "ExternalPayload",
    "NodePayload",
    "Node",
    "Link",
    "GraphSnapshot",
]
