"""
tests/api/test_graph_routes.py

HTTP tests for the /graph routes.

Coverage
--------
  POST /graph/analyze   → 401 without key
                        → 200 stats, complex stats, hubs, components
                        → centrality ordered by PageRank
                        → skippedEdges for dangling edges
                        → edge ids generated when omitted
  POST /graph/query     → causes / effects / ancestors / descendants
                        → root causes and ultimate effects
                        → shortest and enumerated paths with a target
                        → 404 for an unknown node or target
                        → 422 for max_depth outside [1, 20]
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.api.conftest import graph_payload


class TestAnalyze:
    def test_requires_key(self, client: TestClient) -> None:
        assert client.post("/graph/analyze", json=graph_payload()).status_code == 401

    def test_statistics(self, client: TestClient, auth: dict) -> None:
        response = client.post("/graph/analyze", json=graph_payload(), headers=auth)
        assert response.status_code == 200
        data = response.json()
        stats = data["stats"]
        assert stats["nodeCount"] == 5
        assert stats["edgeCount"] == 5
        assert stats["triangleCount"] == 1
        assert stats["relationTypeCounts"]["causes"] == 2
        assert stats["hubNodes"][0]["id"] == "c"
        assert stats["hubNodes"][0]["degree"] == 3
        assert data["complexStats"]["numTriangles"] == 1
        assert data["complexStats"]["density"] == pytest.approx(0.5)
        assert data["weakComponents"] == [["a", "b", "c", "d", "e"]]
        assert data["strongComponents"][0] == ["a", "b", "c"]
        assert data["skippedEdges"] == []

    def test_centrality_ordered_by_pagerank(self, client: TestClient, auth: dict) -> None:
        data = client.post("/graph/analyze", json=graph_payload(), headers=auth).json()
        ranks = [c["pagerank"] for c in data["centrality"]]
        assert len(ranks) == 5
        assert ranks == sorted(ranks, reverse=True)
        assert sum(ranks) == pytest.approx(1.0)

    def test_dangling_edges_skipped(self, client: TestClient, auth: dict) -> None:
        body = graph_payload()
        body["edges"].append({"source": "zz", "target": "a"})
        data = client.post("/graph/analyze", json=body, headers=auth).json()
        assert data["stats"]["edgeCount"] == 5
        assert len(data["skippedEdges"]) == 1
        skipped = data["skippedEdges"][0]
        assert (skipped["source"], skipped["target"]) == ("zz", "a")
        assert skipped["id"]

    def test_empty_graph(self, client: TestClient, auth: dict) -> None:
        data = client.post("/graph/analyze", json={}, headers=auth).json()
        assert data["stats"]["nodeCount"] == 0
        assert data["centrality"] == []


class TestQuery:
    def _body(self, **extra) -> dict:
        body = graph_payload()
        body.update(extra)
        return body

    def test_traversals(self, client: TestClient, auth: dict) -> None:
        response = client.post("/graph/query", json=self._body(nodeId="d"), headers=auth)
        assert response.status_code == 200
        data = response.json()
        assert data["nodeId"] == "d"
        assert data["causes"] == ["c"]
        assert data["effects"] == ["e"]
        assert set(data["ancestors"]) == {"a", "b", "c"}
        assert data["descendants"] == ["e"]
        assert data["ultimateEffects"] == ["e"]
        assert data["rootCauses"] == []
        assert data["shortestPath"] is None
        assert data["causalPaths"] == []

    def test_paths_to_target(self, client: TestClient, auth: dict) -> None:
        body = self._body(nodeId="a", targetId="e")
        data = client.post("/graph/query", json=body, headers=auth).json()
        assert data["shortestPath"] == ["a", "b", "c", "d", "e"]
        assert data["causalPaths"] == [["a", "b", "c", "d", "e"]]

    def test_unknown_node_returns_404(self, client: TestClient, auth: dict) -> None:
        response = client.post("/graph/query", json=self._body(nodeId="nope"), headers=auth)
        assert response.status_code == 404

    def test_unknown_target_returns_404(self, client: TestClient, auth: dict) -> None:
        body = self._body(nodeId="a", targetId="nope")
        assert client.post("/graph/query", json=body, headers=auth).status_code == 404

    @pytest.mark.parametrize("depth", [0, 21])
    def test_depth_bounds(self, client: TestClient, auth: dict, depth: int) -> None:
        body = self._body(nodeId="a", maxDepth=depth)
        assert client.post("/graph/query", json=body, headers=auth).status_code == 422
