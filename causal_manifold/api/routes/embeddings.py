"""
causal_manifold/api/routes/embeddings.py

Geometric refinement endpoint.

GET /embeddings/compute
    Describe the POST contract and the default transformer options.

POST /embeddings/compute
    Build the graph from the request body (edges whose endpoints are missing
    are skipped and reported), build its simplicial complex and refine the
    supplied per-node embeddings with the geometric transformer.

    The embedding dimension defaults to the length of the supplied vectors.
    Fewer than two nodes, a node without an embedding, or vectors of
    different lengths are rejected with HTTP 400 by the application's
    error handler.  Transformer weights are released on every exit path.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status

from causal_manifold.api.routes import require_api_key
from causal_manifold.embeddings.transformer import TransformerConfig
from causal_manifold.models.schemas import (
    ComplexStatsOut,
    ComputeInfoResponse,
    ComputeRequest,
    ComputeResponse,
    SkippedEdgeOut,
    TransformerOptions,
)
from causal_manifold.pipeline import refine_embeddings, resolve_transformer_config, validate_embeddings

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/compute",
    response_model=ComputeInfoResponse,
    summary="Describe the refinement endpoint",
)
async def compute_info(_key: str = Depends(require_api_key)) -> ComputeInfoResponse:
    defaults = TransformerConfig.from_settings()
    return ComputeInfoResponse(
        endpoint="/embeddings/compute",
        method="POST",
        description="Refine per-node embeddings over the graph's simplicial complex.",
        default_config=TransformerOptions(**defaults.to_dict()),
        request_fields={
            "nodes": "list of {id, label?, type?, domain?}",
            "edges": "list of {source, target, relationType?, confidence?}",
            "embeddings": "map of node id to vector; every node needs one",
            "config": "optional transformer options",
        },
    )


@router.post(
    "/compute",
    response_model=ComputeResponse,
    status_code=status.HTTP_200_OK,
    summary="Refine embeddings with the geometric transformer",
)
async def compute_embeddings(
    body: ComputeRequest,
    _key: str = Depends(require_api_key),
) -> ComputeResponse:
    """Return refined embeddings for every node plus complex statistics."""
    graph, skipped = body.build()
    dim = validate_embeddings(graph.node_ids, body.embeddings)
    overrides = body.config.overrides() if body.config else {}
    config = resolve_transformer_config(dim, overrides)

    logger.info(
        "embeddings_compute_received",
        nodes=graph.node_count,
        edges=graph.edge_count,
        skipped_edges=len(skipped),
        embedding_dim=dim,
    )

    result = await refine_embeddings(graph, body.embeddings, config)

    return ComputeResponse(
        refined_embeddings=result.refined,
        complex_stats=ComplexStatsOut.from_stats(result.complex_stats),
        skipped_edges=[SkippedEdgeOut.from_edge(e) for e in skipped],
        config=TransformerOptions(**result.config.to_dict()),
    )
