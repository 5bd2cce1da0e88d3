"""
tests/api/test_projection_routes.py

HTTP tests for the /projection routes.

Coverage
--------
  POST /projection            → 401 without key
                              → 200, one coordinate per id in request order
                              → every axis spans exactly the requested range
                              → 2-component projection
                              → 400 for a single vector or an inverted range
                              → 400 above settings.max_nodes vectors
                              → 422 for n_components outside {2, 3}
  POST /projection/manifold   → 200, tagged points in node order
                              → default range [-50, 50]
                              → 400 when a node has no embedding
"""
from __future__ import annotations

from unittest.mock import patch

from fastapi.testclient import TestClient

from causal_manifold.config import settings
from tests.api.conftest import embeddings_payload, graph_payload

_FAST = {"nNeighbors": 4, "nEpochs": 50, "randomState": 7}


def _assert_spans(points: list[list[float]], lo: float, hi: float) -> None:
    for axis in range(len(points[0])):
        column = [p[axis] for p in points]
        assert (min(column), max(column)) in {(lo, hi), ((lo + hi) / 2, (lo + hi) / 2)}


class TestProject:
    def test_requires_key(self, client: TestClient) -> None:
        response = client.post("/projection", json={"embeddings": embeddings_payload()})
        assert response.status_code == 401

    def test_coordinates_in_request_order(self, client: TestClient, auth: dict) -> None:
        embeddings = embeddings_payload("qzxab")
        body = {"embeddings": embeddings, "config": _FAST, "range": {"min": -1, "max": 1}}
        response = client.post("/projection", json=body, headers=auth)
        assert response.status_code == 200
        data = response.json()
        assert list(data["coordinates"]) == ["q", "z", "x", "a", "b"]
        assert data["nComponents"] == 3
        assert data["nEpochs"] == data["epochsCompleted"] == 50
        assert data["cancelled"] is False
        _assert_spans(list(data["coordinates"].values()), -1.0, 1.0)

    def test_two_components(self, client: TestClient, auth: dict) -> None:
        body = {"embeddings": embeddings_payload(), "config": {**_FAST, "nComponents": 2}}
        data = client.post("/projection", json=body, headers=auth).json()
        assert {len(v) for v in data["coordinates"].values()} == {2}
        _assert_spans(list(data["coordinates"].values()), -50.0, 50.0)

    def test_single_vector_returns_400(self, client: TestClient, auth: dict) -> None:
        body = {"embeddings": {"a": [0.0, 1.0]}}
        response = client.post("/projection", json=body, headers=auth)
        assert response.status_code == 400
        assert response.json()["code"] == "INSUFFICIENT_POINTS"

    def test_too_many_vectors_returns_400(self, client: TestClient, auth: dict) -> None:
        body = {"embeddings": embeddings_payload("abcde"), "config": _FAST}
        with patch.object(settings, "max_nodes", 3):
            response = client.post("/projection", json=body, headers=auth)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert "At most 3" in response.json()["detail"]

    def test_inverted_range_returns_400(self, client: TestClient, auth: dict) -> None:
        body = {"embeddings": embeddings_payload(), "range": {"min": 5, "max": -5}}
        response = client.post("/projection", json=body, headers=auth)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CONFIGURATION"

    def test_four_components_returns_422(self, client: TestClient, auth: dict) -> None:
        body = {"embeddings": embeddings_payload(), "config": {"nComponents": 4}}
        assert client.post("/projection", json=body, headers=auth).status_code == 422


class TestManifold:
    def _body(self) -> dict:
        body = graph_payload()
        body["embeddings"] = embeddings_payload()
        body["transformer"] = {"hiddenDim": 8, "numHeads": 2, "numLayers": 2}
        body["projector"] = _FAST
        return body

    def test_points_in_node_order(self, client: TestClient, auth: dict) -> None:
        response = client.post("/projection/manifold", json=self._body(), headers=auth)
        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["points"]] == ["a", "b", "c", "d", "e"]
        first = data["points"][0]
        assert first["label"] == "Drought"
        assert first["type"] == "event"
        assert first["domain"] == "climate"
        assert data["points"][4]["type"] is None
        assert data["complexStats"]["numTriangles"] == 1
        assert data["nComponents"] == 3
        _assert_spans([p["position"] for p in data["points"]], -50.0, 50.0)

    def test_missing_embedding_returns_400(self, client: TestClient, auth: dict) -> None:
        body = self._body()
        del body["embeddings"]["c"]
        response = client.post("/projection/manifold", json=body, headers=auth)
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_EMBEDDING"

