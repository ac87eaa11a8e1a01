"""Graph projector: flattens the source hierarchy into the visible snapshot.

Given the hierarchy, the set of expanded container ids and a view mode, the
projector emits the node/link set that should currently be laid out:

- Expanded containers with materialized children are recursed into, with a
  structural link from parent to each child.
- Collapsed containers that have (or announce) children get one synthetic
  aggregate node ``<id>::__cluster`` carrying the hidden descendant count.
- Expanded files emit their parsed symbols as leaf nodes ``<id>#<symbol>``.
- Missing dependencies become external placeholders ``ghost-<id>``.

The projector is pure: identical inputs give an identical node/link set. The
emission order follows the traversal and must not be relied upon.
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from graphlayout.models.graph_snapshot import (
    REFERENCE_LINK_KINDS,
    AggregatePayload,
    ContainerPayload,
    ExternalPayload,
    GraphSnapshot,
    LeafPayload,
    Link,
    LinkKind,
    Node,
    NodeKind,
)
from graphlayout.models.hierarchy import Hierarchy, SourceNode

logger = logging.getLogger(__name__)

AGGREGATE_SUFFIX = "::__cluster"
SYMBOL_SEPARATOR = "#"
EXTERNAL_PREFIX = "ghost-"

HighlightPredicate = Callable[[str], bool]


class ViewMode(str, Enum):
    """Which link kinds a projection keeps."""

    STRUCTURAL = "structural"
    SEMANTIC = "semantic"
    COMBINED = "combined"

    @property
    def link_kinds(self) -> FrozenSet[LinkKind]:
        if self is ViewMode.STRUCTURAL:
            return frozenset({LinkKind.STRUCTURAL, LinkKind.DEPENDENCY})
        if self is ViewMode.SEMANTIC:
            return REFERENCE_LINK_KINDS
        return frozenset(LinkKind)


def aggregate_id(parent_id: str) -> str:
    return f"{parent_id}{AGGREGATE_SUFFIX}"


def symbol_id(file_id: str, symbol_name: str) -> str:
    return f"{file_id}{SYMBOL_SEPARATOR}{symbol_name}"


def external_id(dependency_id: str) -> str:
    return f"{EXTERNAL_PREFIX}{dependency_id}"


def paths_highlighter(paths: Iterable[str]) -> HighlightPredicate:
    """Predicate matching any path that contains one of ``paths``."""
    fragments = tuple(p for p in paths if p)

    def predicate(path: str) -> bool:
        return any(fragment in path for fragment in fragments)

    return predicate


class HierarchyProjector:
    """Projects a Hierarchy into a GraphSnapshot.

    Stateless between calls; descendant counts are memoized per call only.

    Example:
        projector = HierarchyProjector()
        snapshot = projector.project(hierarchy, {"src"}, ViewMode.STRUCTURAL)
    """

    def project(
        self,
        hierarchy: Hierarchy,
        expanded_ids: Optional[Iterable[str]] = None,
        view_mode: ViewMode = ViewMode.STRUCTURAL,
        highlight: Optional[HighlightPredicate] = None,
    ) -> GraphSnapshot:
        """Flatten the visible part of the hierarchy.

        Args:
            hierarchy: Source tree plus semantic links and missing dependencies
            expanded_ids: Expanded container ids (default: only the root)
            view_mode: Which link kinds to keep
            highlight: Optional predicate on node paths

        Returns:
            GraphSnapshot of the visible nodes and links
        """
        expanded: Set[str] = (
            {hierarchy.root.id} if expanded_ids is None else set(expanded_ids)
        )
        view_mode = ViewMode(view_mode)
        run = _ProjectionRun(expanded, highlight)
        run.traverse(hierarchy.root, None, 0)

        if view_mode is ViewMode.SEMANTIC:
            return self._semantic_view(run, hierarchy)

        run.add_missing_dependencies(hierarchy)
        links = list(run.links)
        if view_mode is ViewMode.COMBINED:
            links.extend(run.semantic_links(hierarchy))

        logger.debug(
            f"Projected {len(run.nodes)} nodes, {len(links)} links ({view_mode.value})"
        )
        return GraphSnapshot(nodes=run.nodes, links=links)

    def _semantic_view(self, run: "_ProjectionRun", hierarchy: Hierarchy) -> GraphSnapshot:
        links = run.semantic_links(hierarchy)
        endpoint_ids = {link.source for link in links} | {link.target for link in links}
        nodes = [node for node in run.nodes if node.id in endpoint_ids]
        return GraphSnapshot(nodes=nodes, links=links)


class _ProjectionRun:
    """Mutable scratch state of a single project() call."""

    def __init__(self, expanded: Set[str], highlight: Optional[HighlightPredicate]):
        self.expanded = expanded
        self.highlight = highlight
        self.nodes: List[Node] = []
        self.links: List[Link] = []
        self.emitted: Set[str] = set()
        self.id_by_path: Dict[str, str] = {}
        self._descendants: Dict[str, int] = {}

    def _emit(self, node: Node) -> bool:
        if node.id in self.emitted:
            logger.debug(f"Duplicate node id {node.id!r} skipped")
            return False
        self.emitted.add(node.id)
        self.nodes.append(node)
        return True

    def _is_highlighted(self, path: str) -> bool:
        return bool(self.highlight and path and self.highlight(path))

    def count_descendants(self, source: SourceNode) -> int:
        """Precomputed count if present, otherwise a memoized subtree walk."""
        if source.descendant_count is not None:
            return source.descendant_count
        cached = self._descendants.get(source.id)
        if cached is not None:
            return cached
        total = sum(1 + self.count_descendants(child) for child in source.children or [])
        self._descendants[source.id] = total
        return total

    def traverse(self, source: SourceNode, parent_id: Optional[str], depth: int) -> None:
        if source.is_container:
            payload = ContainerPayload(
                path=source.path,
                has_children=source.announces_children,
                descendant_count=source.descendant_count,
            )
            kind = NodeKind.CONTAINER
        else:
            payload = LeafPayload(path=source.path)
            kind = NodeKind.LEAF

        node = Node(
            id=source.id,
            kind=kind,
            depth=depth,
            label=source.name,
            highlighted=self._is_highlighted(source.path),
            payload=payload,
        )
        if not self._emit(node):
            return
        self.id_by_path.setdefault(source.path, source.id)

        if parent_id is not None:
            self.links.append(Link(source=parent_id, target=source.id))

        is_expanded = source.id in self.expanded

        if source.is_container and source.announces_children:
            if is_expanded and source.children:
                for child in source.children:
                    self.traverse(child, source.id, depth + 1)
            else:
                self._add_aggregate(source, depth)

        if not source.is_container and is_expanded:
            for symbol in source.symbols:
                child_id = symbol_id(source.id, symbol.name)
                symbol_node = Node(
                    id=child_id,
                    kind=NodeKind.LEAF,
                    depth=depth + 1,
                    label=symbol.name,
                    payload=LeafPayload(path=child_id, symbol_type=symbol.type),
                )
                if self._emit(symbol_node):
                    self.links.append(Link(source=source.id, target=child_id))

    def _add_aggregate(self, source: SourceNode, depth: int) -> None:
        hidden = self.count_descendants(source)
        cluster = Node(
            id=aggregate_id(source.id),
            kind=NodeKind.AGGREGATE,
            depth=depth + 1,
            label=f"{hidden} items",
            payload=AggregatePayload(target_id=source.id, hidden_count=hidden),
        )
        if self._emit(cluster):
            self.links.append(Link(source=source.id, target=cluster.id))

    def add_missing_dependencies(self, hierarchy: Hierarchy) -> None:
        for dependency in hierarchy.missing_dependencies:
            ghost = Node(
                id=external_id(dependency.id),
                kind=NodeKind.EXTERNAL,
                depth=0,
                label=dependency.name or dependency.id,
                payload=ExternalPayload(
                    dependency_type=dependency.type,
                    required_by=list(dependency.required_by),
                ),
            )
            if not self._emit(ghost):
                continue
            for path in dependency.required_by:
                source_id = self.id_by_path.get(path)
                if source_id is not None:
                    self.links.append(
                        Link(source=source_id, target=ghost.id, kind=LinkKind.DEPENDENCY)
                    )

    def semantic_links(self, hierarchy: Hierarchy) -> List[Link]:
        """Semantic links whose endpoints are both visible, deduplicated."""
        seen: Set[str] = set()
        result: List[Link] = []
        for semantic in hierarchy.semantic_links:
            if semantic.source not in self.emitted or semantic.target not in self.emitted:
                continue
            link = Link(source=semantic.source, target=semantic.target, kind=semantic.kind)
            if link.key in seen:
                continue
            seen.add(link.key)
            result.append(link)
        return result


def project(
    hierarchy: Hierarchy,
    expanded_ids: Optional[Iterable[str]] = None,
    view_mode: ViewMode = ViewMode.STRUCTURAL,
    highlight: Optional[HighlightPredicate] = None,
) -> GraphSnapshot:
    """Module-level shortcut for HierarchyProjector().project()."""
    return HierarchyProjector().project(hierarchy, expanded_ids, view_mode, highlight)


__all__ = [
    "AGGREGATE_SUFFIX",
    "ViewMode",
    "HierarchyProjector",
    "aggregate_id",
    "symbol_id",
    "external_id",
    "paths_highlighter",
    "project",
]
