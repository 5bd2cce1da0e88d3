"""
tests/unit/test_analytics.py

Unit tests for causal_manifold.graph.analytics.

Coverage
--------
  - to_networkx(): nodes, attributes, parallel edges collapsed to max weight
  - pagerank(): sums to 1, sink of a chain ranks highest
  - analyze(): betweenness of a chain's middle node, closeness
  - weak / strong components ordered largest first
  - top() ordering and empty-graph behaviour
"""
from __future__ import annotations

import pytest

from causal_manifold.graph.analytics import GraphAnalytics, analyze, pagerank, to_networkx
from causal_manifold.graph.model import CausalGraph, Edge, Node


def _graph() -> CausalGraph:
    """a -> b -> c -> a cycle, c -> d, and an isolated node e."""
    g = CausalGraph()
    for nid in "abcde":
        g.add_node(Node(id=nid, label=nid.upper(), type="variable", domain="climate"))
    for i, (s, t) in enumerate([("a", "b"), ("b", "c"), ("c", "a"), ("c", "d")]):
        g.add_edge(Edge(id=f"e{i}", source=s, target=t, relation_type="causes", confidence=0.5))
    return g


class TestToNetworkx:
    def test_nodes_and_attributes(self) -> None:
        g = to_networkx(_graph())
        assert set(g.nodes) == set("abcde")
        assert g.nodes["a"]["type"] == "variable"
        assert g.number_of_edges() == 4

    def test_parallel_edges_collapse(self) -> None:
        graph = _graph()
        graph.add_edge(Edge(id="dup", source="a", target="b", relation_type="enables", confidence=0.9))
        g = to_networkx(graph)
        assert g.number_of_edges() == 4
        assert g.edges["a", "b"]["weight"] == pytest.approx(0.9)
        assert g.edges["a", "b"]["relation_types"] == ["causes", "enables"]


class TestMeasures:
    def test_pagerank_sums_to_one(self) -> None:
        scores = pagerank(_graph())
        assert sum(scores.values()) == pytest.approx(1.0)

    def test_chain_sink_ranks_highest(self) -> None:
        g = CausalGraph()
        for nid in "xyz":
            g.add_node(Node(id=nid, label=nid))
        g.add_edge(Edge(id="1", source="x", target="y", relation_type="causes"))
        g.add_edge(Edge(id="2", source="y", target="z", relation_type="causes"))
        result = analyze(g)
        assert result.top("pagerank", 1)[0][0] == "z"
        assert result.betweenness["y"] > result.betweenness["x"]

    def test_components(self) -> None:
        result = analyze(_graph())
        assert result.weak_components == [["a", "b", "c", "d"], ["e"]]
        assert result.strong_components[0] == ["a", "b", "c"]
        assert len(result.strong_components) == 3

    def test_closeness_of_isolated_node_is_zero(self) -> None:
        assert analyze(_graph()).closeness["e"] == 0.0

    def test_empty_graph(self) -> None:
        result = analyze(CausalGraph())
        assert result == GraphAnalytics()
        assert result.top("pagerank") == []
