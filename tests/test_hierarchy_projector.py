"""Tests for the hierarchy projector.

Tests cover:
- Expanded and collapsed scenarios (aggregate nodes, descendant counts)
- Lazily fetched containers
- File symbols
- Structural, semantic and combined view modes
- Missing-dependency placeholders
- Highlighting
- Determinism and duplicate ids
"""

import pytest

from graphlayout.converters.hierarchy_projector import (
    HierarchyProjector,
    ViewMode,
    aggregate_id,
    external_id,
    paths_highlighter,
    project,
    symbol_id,
)
from graphlayout.models.graph_snapshot import LinkKind, NodeKind
from graphlayout.models.hierarchy import Hierarchy, MissingDependency, SemanticLink, SourceNode


def link_set(snapshot):
    return {(link.source, link.target, link.kind) for link in snapshot.links}


# =============================================================================
# Scenario tests
# =============================================================================


class TestScenarios:

    def test_expanded_root(self, expanded_snapshot):
        assert expanded_snapshot.node_ids() == {"root", "a", "b"}
        assert link_set(expanded_snapshot) == {
            ("root", "a", LinkKind.STRUCTURAL),
            ("root", "b", LinkKind.STRUCTURAL),
        }
        nodes = expanded_snapshot.nodes_by_id()
        assert nodes["root"].depth == 0
        assert nodes["root"].kind == NodeKind.CONTAINER
        assert nodes["a"].depth == 1
        assert nodes["a"].kind == NodeKind.LEAF

    def test_collapsed_root(self, collapsed_snapshot):
        cluster_id = aggregate_id("root")
        assert cluster_id == "root::__cluster"
        assert collapsed_snapshot.node_ids() == {"root", cluster_id}
        assert link_set(collapsed_snapshot) == {("root", cluster_id, LinkKind.STRUCTURAL)}

        cluster = collapsed_snapshot.get_node(cluster_id)
        assert cluster.kind == NodeKind.AGGREGATE
        assert cluster.descendant_count == 2
        assert cluster.aggregate_target == "root"
        assert cluster.depth == 1

    def test_default_expands_root_only(self, project_hierarchy):
        snapshot = project(project_hierarchy)
        ids = snapshot.node_ids()
        assert {"src", "src/core", "src/main.py", "src/vendor"} <= ids
        assert aggregate_id("src/core") in ids
        assert "src/core/engine.py" not in ids

    def test_nested_descendant_count(self, project_hierarchy):
        snapshot = project(project_hierarchy, set(), ViewMode.STRUCTURAL)
        cluster = snapshot.get_node(aggregate_id("src"))
        # core, engine.py, util.py, main.py, vendor
        assert cluster.descendant_count == 5

    def test_precomputed_descendant_count_wins(self):
        hierarchy = Hierarchy(
            root=SourceNode(
                path="lib",
                type="directory",
                descendant_count=40,
                children=[SourceNode(path="lib/x.py")],
            )
        )
        snapshot = project(hierarchy, set())
        assert snapshot.get_node(aggregate_id("lib")).descendant_count == 40

    def test_unfetched_container_gets_aggregate(self, project_hierarchy):
        snapshot = project(project_hierarchy, {"src", "src/vendor"})
        cluster = snapshot.get_node(aggregate_id("src/vendor"))
        assert cluster is not None
        assert cluster.descendant_count == 0

    def test_empty_directory_has_no_aggregate(self):
        hierarchy = Hierarchy(root=SourceNode(path="empty", type="directory", children=[]))
        snapshot = project(hierarchy, set())
        assert snapshot.node_ids() == {"empty"}
        assert snapshot.links == []


# =============================================================================
# Symbols
# =============================================================================


class TestSymbols:

    def test_expanded_file_emits_symbols(self, project_hierarchy):
        snapshot = project(project_hierarchy, {"src", "src/core", "src/core/engine.py"})
        run_id = symbol_id("src/core/engine.py", "run")
        assert run_id == "src/core/engine.py#run"
        assert run_id in snapshot.node_ids()
        assert ("src/core/engine.py", run_id, LinkKind.STRUCTURAL) in link_set(snapshot)

        node = snapshot.get_node(symbol_id("src/core/engine.py", "Engine"))
        assert node.payload.symbol_type == "class"
        assert node.depth == 3

    def test_collapsed_file_has_no_symbols_or_aggregate(self, project_hierarchy):
        snapshot = project(project_hierarchy, {"src", "src/core"})
        assert not any("#" in node_id for node_id in snapshot.node_ids())
        assert aggregate_id("src/core/engine.py") not in snapshot.node_ids()


# =============================================================================
# View modes
# =============================================================================


class TestViewModes:

    EXPANDED = {"src", "src/core"}

    def test_structural_drops_semantic_links(self, project_hierarchy):
        snapshot = project(project_hierarchy, self.EXPANDED, ViewMode.STRUCTURAL)
        kinds = {link.kind for link in snapshot.links}
        assert kinds <= {LinkKind.STRUCTURAL, LinkKind.DEPENDENCY}

    def test_semantic_keeps_only_link_endpoints(self, project_hierarchy):
        snapshot = project(project_hierarchy, self.EXPANDED, ViewMode.SEMANTIC)
        assert snapshot.node_ids() == {
            "src/main.py",
            "src/core/engine.py",
            "src/core/util.py",
        }
        assert link_set(snapshot) == {
            ("src/main.py", "src/core/engine.py", LinkKind.IMPORT),
            ("src/core/engine.py", "src/core/util.py", LinkKind.CALL),
        }

    def test_semantic_drops_links_to_hidden_nodes(self, project_hierarchy):
        # src/core collapsed: engine.py and util.py are not visible
        snapshot = project(project_hierarchy, {"src"}, ViewMode.SEMANTIC)
        assert snapshot.nodes == []
        assert snapshot.links == []

    def test_combined_keeps_everything(self, project_hierarchy):
        structural = project(project_hierarchy, self.EXPANDED, ViewMode.STRUCTURAL)
        combined = project(project_hierarchy, self.EXPANDED, ViewMode.COMBINED)
        assert combined.node_ids() == structural.node_ids()
        assert link_set(structural) < link_set(combined)
        assert ("src/main.py", "src/core/engine.py", LinkKind.IMPORT) in link_set(combined)

    def test_view_modes_have_distinct_fingerprints(self, project_hierarchy):
        fingerprints = {
            project(project_hierarchy, self.EXPANDED, mode).fingerprint()
            for mode in ViewMode
        }
        assert len(fingerprints) == 3

    def test_duplicate_semantic_links_deduplicated(self, project_hierarchy):
        hierarchy = project_hierarchy.model_copy(update={
            "semantic_links": project_hierarchy.semantic_links
            + [SemanticLink(source="src/main.py", target="src/core/engine.py")]
        })
        snapshot = project(hierarchy, self.EXPANDED, ViewMode.SEMANTIC)
        assert len(snapshot.links) == 2

    def test_semantic_link_kind_validated(self):
        with pytest.raises(ValueError):
            SemanticLink(source="a", target="b", kind=LinkKind.STRUCTURAL)


# =============================================================================
# Missing dependencies
# =============================================================================


class TestMissingDependencies:

    def test_placeholder_and_dependency_link(self, project_hierarchy):
        snapshot = project(project_hierarchy)
        ghost = snapshot.get_node(external_id("db"))
        assert ghost is not None
        assert ghost.id == "ghost-db"
        assert ghost.kind == NodeKind.EXTERNAL
        assert ghost.label == "orders table"
        assert ghost.payload.dependency_type == "table"
        assert ("src/main.py", "ghost-db", LinkKind.DEPENDENCY) in link_set(snapshot)

    def test_no_link_when_requirer_hidden(self, project_hierarchy):
        hierarchy = Hierarchy(
            root=project_hierarchy.root,
            missing_dependencies=[
                MissingDependency(id="auth", required_by=["src/core/engine.py"])
            ],
        )
        snapshot = project(hierarchy, {"src"})
        assert "ghost-auth" in snapshot.node_ids()
        assert not any(link.target == "ghost-auth" for link in snapshot.links)

    def test_semantic_view_has_no_placeholders(self, project_hierarchy):
        snapshot = project(project_hierarchy, {"src", "src/core"}, ViewMode.SEMANTIC)
        assert "ghost-db" not in snapshot.node_ids()


# =============================================================================
# Highlighting, determinism, duplicates
# =============================================================================


class TestProjectionProperties:

    def test_highlight_marks_matching_paths(self, project_hierarchy):
        snapshot = project(
            project_hierarchy,
            {"src", "src/core"},
            highlight=paths_highlighter(["engine"]),
        )
        highlighted = {node.id for node in snapshot.nodes if node.highlighted}
        assert highlighted == {"src/core/engine.py"}

    def test_highlight_does_not_change_fingerprint(self, project_hierarchy):
        plain = project(project_hierarchy, {"src"})
        highlighted = project(project_hierarchy, {"src"}, highlight=lambda path: True)
        assert any(node.highlighted for node in highlighted.nodes)
        assert plain.fingerprint() == highlighted.fingerprint()

    def test_projection_is_pure(self, project_hierarchy):
        projector = HierarchyProjector()
        first = projector.project(project_hierarchy, {"src", "src/core"})
        second = projector.project(project_hierarchy, {"src", "src/core"})
        assert first == second

    def test_duplicate_ids_emitted_once(self):
        hierarchy = Hierarchy(
            root=SourceNode(
                path="dup",
                type="directory",
                children=[
                    SourceNode(path="dup/x.py"),
                    SourceNode(path="dup/x.py", name="again"),
                ],
            )
        )
        snapshot = project(hierarchy)
        assert [node.id for node in snapshot.nodes].count("dup/x.py") == 1
        assert snapshot.get_node("dup/x.py").label == "x.py"
        assert len(snapshot.links) == 1

    def test_to_networkx(self, expanded_snapshot):
        graph = expanded_snapshot.to_networkx()
        assert set(graph.nodes) == {"root", "a", "b"}
        assert graph.has_edge("root", "a", key="structural")
        assert graph.nodes["root"]["kind"] == "container"
