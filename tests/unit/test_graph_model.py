"""
tests/unit/test_graph_model.py

Unit tests for causal_manifold.graph.model.

Coverage
--------
  - Node / Edge construction: enum coercion, empty ids, confidence bounds
  - add_node rejects duplicates; stored nodes are copies
  - add_edge rejects duplicate ids and missing endpoints (source / target)
  - add_edges skips dangling edges by default and returns them
  - add_edges(skip_missing=False) propagates MissingEndpointError
  - annotate_node updates description / metadata only
  - remove_edge keeps adjacency while a parallel edge remains
  - remove_node drops incident edges
  - neighbour / degree queries
  - causes, effects, ancestors, descendants, root causes, ultimate effects
  - shortest_path and causal_paths
  - stats(): counts, triangle count, density, hubs
  - subgraph_by_domain, merge, clone, to_dict / from_dict
  - generate_edge_id / normalize_concept_name helpers
"""
from __future__ import annotations

import pytest

from causal_manifold.errors import (
    DuplicateEdgeError,
    DuplicateNodeError,
    InputValidationError,
    MissingEndpointError,
)
from causal_manifold.graph.model import (
    SERIALIZATION_VERSION,
    CausalGraph,
    Edge,
    Node,
    NodeType,
    RelationType,
    generate_edge_id,
    normalize_concept_name,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _node(node_id: str, domain: str | None = "biology") -> Node:
    return Node(id=node_id, label=node_id.upper(), type="concept", domain=domain)


def _edge(source: str, target: str, rel: str = "causes", confidence: float = 0.9,
          edge_id: str | None = None) -> Edge:
    return Edge(
        id=edge_id or f"{source}->{target}:{rel}",
        source=source,
        target=target,
        relation_type=rel,
        confidence=confidence,
    )


def _chain_graph() -> CausalGraph:
    """a -> b -> c -> d, plus e -> c."""
    g = CausalGraph()
    for nid in "abcde":
        g.add_node(_node(nid))
    g.add_edge(_edge("a", "b"))
    g.add_edge(_edge("b", "c"))
    g.add_edge(_edge("c", "d"))
    g.add_edge(_edge("e", "c"))
    return g


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

class TestValueTypes:
    def test_node_type_coerced_from_string(self) -> None:
        assert _node("a").type is NodeType.CONCEPT

    def test_unknown_node_type_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            Node(id="a", label="A", type="planet")

    def test_empty_node_id_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            Node(id="", label="A")

    def test_relation_type_coerced(self) -> None:
        assert _edge("a", "b", rel="inhibits").relation_type is RelationType.INHIBITS

    def test_unknown_relation_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            _edge("a", "b", rel="teleports")

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_outside_unit_interval_rejected(self, confidence: float) -> None:
        with pytest.raises(InputValidationError):
            _edge("a", "b", confidence=confidence)

    def test_relation_type_has_thirteen_members(self) -> None:
        assert len(RelationType) == 13


# ---------------------------------------------------------------------------
# Insertion
# ---------------------------------------------------------------------------

class TestInsertion:
    def test_duplicate_node_rejected(self) -> None:
        g = CausalGraph()
        g.add_node(_node("a"))
        with pytest.raises(DuplicateNodeError) as exc_info:
            g.add_node(_node("a"))
        assert exc_info.value.node_id == "a"

    def test_stored_node_is_a_copy(self) -> None:
        g = CausalGraph()
        node = _node("a")
        g.add_node(node)
        node.metadata["x"] = 1
        assert g.get_node("a").metadata == {}

    def test_duplicate_edge_rejected(self) -> None:
        g = _chain_graph()
        with pytest.raises(DuplicateEdgeError):
            g.add_edge(_edge("a", "b"))

    def test_missing_source_reported(self) -> None:
        g = _chain_graph()
        with pytest.raises(MissingEndpointError) as exc_info:
            g.add_edge(_edge("zz", "a"))
        assert exc_info.value.node_id == "zz"
        assert exc_info.value.role == "source"

    def test_missing_target_reported(self) -> None:
        g = _chain_graph()
        with pytest.raises(MissingEndpointError) as exc_info:
            g.add_edge(_edge("a", "zz"))
        assert exc_info.value.role == "target"

    def test_add_edges_skips_dangling(self) -> None:
        g = _chain_graph()
        skipped = g.add_edges([_edge("a", "d"), _edge("a", "ghost"), _edge("d", "e")])
        assert [e.target for e in skipped] == ["ghost"]
        assert g.has_edge("a->d:causes")
        assert g.has_edge("d->e:causes")

    def test_add_edges_strict_mode_raises(self) -> None:
        g = _chain_graph()
        with pytest.raises(MissingEndpointError):
            g.add_edges([_edge("a", "ghost")], skip_missing=False)

    def test_annotate_node(self) -> None:
        g = _chain_graph()
        updated = g.annotate_node("a", description="first", metadata={"k": "v"})
        assert updated.description == "first"
        assert g.get_node("a").metadata == {"k": "v"}
        assert g.get_node("a").label == "A"


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------

class TestRemoval:
    def test_remove_edge_keeps_parallel_adjacency(self) -> None:
        g = _chain_graph()
        g.add_edge(_edge("a", "b", rel="enables"))
        assert g.remove_edge("a->b:causes")
        assert g.out_neighbors("a") == ["b"]
        assert g.remove_edge("a->b:enables")
        assert g.out_neighbors("a") == []

    def test_remove_missing_edge_returns_false(self) -> None:
        assert not _chain_graph().remove_edge("nope")

    def test_remove_node_drops_incident_edges(self) -> None:
        g = _chain_graph()
        assert g.remove_node("c")
        assert not g.has_node("c")
        assert g.edge_count == 1
        assert g.out_neighbors("b") == []


# ---------------------------------------------------------------------------
# Adjacency and traversal
# ---------------------------------------------------------------------------

class TestTraversal:
    def test_neighbors_and_degrees(self) -> None:
        g = _chain_graph()
        assert g.neighbors("c") == {"b", "d", "e"}
        assert g.in_degree("c") == 2
        assert g.out_degree("c") == 1
        assert g.degree("c") == 3
        assert g.are_connected("d", "c")
        assert not g.are_connected("a", "d")

    def test_direct_causes_and_effects(self) -> None:
        g = _chain_graph()
        assert [n.id for n in g.find_causes("c")] == ["b", "e"]
        assert [n.id for n in g.find_effects("c")] == ["d"]

    def test_ancestors_and_descendants(self) -> None:
        g = _chain_graph()
        assert {n.id for n in g.find_ancestors("d")} == {"a", "b", "c", "e"}
        assert [n.id for n in g.find_descendants("b")] == ["c", "d"]

    def test_root_causes_and_ultimate_effects(self) -> None:
        g = _chain_graph()
        assert {n.id for n in g.find_root_causes("d")} == {"a", "e"}
        assert [n.id for n in g.find_ultimate_effects("a")] == ["d"]

    def test_shortest_path(self) -> None:
        g = _chain_graph()
        assert g.shortest_path("a", "d") == ["a", "b", "c", "d"]
        assert g.shortest_path("d", "a") is None
        assert g.shortest_path("a", "a") == ["a"]

    def test_causal_paths_respects_depth(self) -> None:
        g = _chain_graph()
        g.add_edge(_edge("a", "c"))
        paths = g.causal_paths("a", "d")
        assert sorted(paths) == [["a", "b", "c", "d"], ["a", "c", "d"]]
        assert g.causal_paths("a", "d", max_depth=3) == [["a", "c", "d"]]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestStats:
    def test_counts_and_density(self) -> None:
        stats = _chain_graph().stats()
        assert stats.node_count == 5
        assert stats.edge_count == 4
        assert stats.triangle_count == 0
        assert stats.density == pytest.approx(4 / 20)
        assert stats.avg_degree == pytest.approx(8 / 5)
        assert stats.relation_type_counts == {"causes": 4}

    def test_triangle_counted(self) -> None:
        g = _chain_graph()
        g.add_edge(_edge("a", "c", rel="correlates_with"))
        assert g.stats().triangle_count == 1

    def test_hubs_sorted_by_degree_then_id(self) -> None:
        hubs = _chain_graph().stats().hub_nodes
        assert [h.id for h in hubs] == ["c", "b", "a", "d", "e"]
        assert hubs[0].degree == 3

    def test_empty_graph(self) -> None:
        stats = CausalGraph().stats()
        assert stats.node_count == 0
        assert stats.density == 0.0
        assert stats.hub_nodes == []


# ---------------------------------------------------------------------------
# Derivation and serialization
# ---------------------------------------------------------------------------

class TestDerivation:
    def test_subgraph_by_domain(self) -> None:
        g = _chain_graph()
        g.add_node(_node("x", domain="economics"))
        g.add_edge(_edge("x", "a"))
        sub = g.subgraph_by_domain("economics")
        assert sub.node_ids == ["x"]
        assert sub.edge_count == 0

    def test_merge_skips_existing(self) -> None:
        g = _chain_graph()
        other = CausalGraph()
        other.add_node(_node("a"))
        other.add_node(_node("z"))
        other.add_edge(_edge("z", "a"))
        g.merge(other)
        assert g.node_count == 6
        assert g.has_edge("z->a:causes")

    def test_round_trip_through_dict(self) -> None:
        g = _chain_graph()
        data = g.to_dict()
        assert data["version"] == SERIALIZATION_VERSION
        assert data["metadata"]["edge_count"] == 4
        restored = CausalGraph.from_dict(data)
        assert restored.node_ids == g.node_ids
        assert {e.id for e in restored.edges} == {e.id for e in g.edges}

    def test_clone_is_independent(self) -> None:
        g = _chain_graph()
        copy = g.clone()
        copy.remove_node("a")
        assert g.has_node("a")

    def test_clear(self) -> None:
        g = _chain_graph()
        g.clear()
        assert g.node_count == 0
        assert g.edge_count == 0


class TestHelpers:
    def test_generate_edge_id_is_deterministic(self) -> None:
        assert generate_edge_id("a", "b", RelationType.CAUSES) == generate_edge_id("a", "b", "causes")

    def test_normalize_concept_name(self) -> None:
        assert normalize_concept_name("  Climate   Change ") == "climate change"
