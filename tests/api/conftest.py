"""
tests/api/conftest.py

Shared fixtures for API route tests.

The `client` fixture enters the app lifespan through TestClient's context
manager.  The service holds no external connections, so nothing needs to be
patched; require_api_key runs for real and authenticated tests send the
default "changeme" key (matches settings.api_key default).
"""
from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from causal_manifold.main import app

# Default API key that matches settings.api_key default value.
VALID_API_KEY = "changeme"


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth() -> dict[str, str]:
    return {"X-API-Key": VALID_API_KEY}


def graph_payload() -> dict:
    """Five nodes: a -> b -> c closed by c ~ a, plus c -> d and d -> e."""
    return {
        "nodes": [
            {"id": "a", "label": "Drought", "type": "event", "domain": "climate"},
            {"id": "b", "label": "Crop failure", "type": "event", "domain": "biology"},
            {"id": "c", "label": "Food prices", "type": "variable", "domain": "economics"},
            {"id": "d", "label": "Migration", "domain": "archaeology"},
            {"id": "e", "label": "Settlement"},
        ],
        "edges": [
            {"source": "a", "target": "b", "relationType": "causes", "confidence": 0.9},
            {"source": "b", "target": "c", "relationType": "causes", "confidence": 0.8},
            {"source": "c", "target": "a", "relationType": "correlates_with", "confidence": 0.5},
            {"source": "c", "target": "d", "relationType": "triggers", "confidence": 0.7},
            {"source": "d", "target": "e", "relationType": "produces", "confidence": 0.6},
        ],
    }


def embeddings_payload(ids: str = "abcde", dim: int = 8) -> dict[str, list[float]]:
    return {
        nid: [((i + 1) * (j + 3) % 7) / 7.0 - 0.5 for j in range(dim)]
        for i, nid in enumerate(ids)
    }
