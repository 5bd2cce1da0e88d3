"""
causal_manifold/api/routes/projection.py

Manifold projection endpoints.

POST /projection
    Project a map of id -> vector to 2 or 3 components with the UMAP-style
    projector and normalise every axis into the requested range.  The
    response keeps the request's key order.

POST /projection/manifold
    End-to-end: graph + embeddings -> geometric refinement -> projection ->
    normalisation.  Each point carries its node's type and domain tags for
    visual encoding.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status

from causal_manifold.api.routes import require_api_key
from causal_manifold.embeddings.projector import ProjectorConfig
from causal_manifold.models.schemas import (
    ComplexStatsOut,
    ManifoldPoint,
    ManifoldRequest,
    ManifoldResponse,
    ProjectionRequest,
    ProjectionResponse,
    ProjectorOptions,
    RangeIn,
    SkippedEdgeOut,
)
from causal_manifold.pipeline import (
    project_embeddings,
    resolve_transformer_config,
    run_manifold_pipeline,
    validate_embeddings,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _projector_config(options: ProjectorOptions | None) -> ProjectorConfig:
    overrides = options.overrides() if options else {}
    return ProjectorConfig.from_settings().with_overrides(**overrides)


def _bounds(range_: RangeIn | None) -> tuple[float | None, float | None]:
    if range_ is None:
        return None, None
    return range_.min, range_.max


@router.post(
    "",
    response_model=ProjectionResponse,
    status_code=status.HTTP_200_OK,
    summary="Project embeddings to 2-D or 3-D",
)
async def project(
    body: ProjectionRequest,
    _key: str = Depends(require_api_key),
) -> ProjectionResponse:
    config = _projector_config(body.config)
    range_min, range_max = _bounds(body.range)

    logger.info(
        "projection_received",
        points=len(body.embeddings),
        n_components=config.n_components,
        n_neighbors=config.n_neighbors,
    )

    outcome = await project_embeddings(body.embeddings, config, range_min, range_max)

    return ProjectionResponse(
        coordinates={nid: list(xyz) for nid, xyz in outcome.coordinates.items()},
        n_components=outcome.n_components,
        n_epochs=outcome.n_epochs,
        epochs_completed=outcome.epochs_completed,
        cancelled=outcome.cancelled,
    )


@router.post(
    "/manifold",
    response_model=ManifoldResponse,
    status_code=status.HTTP_200_OK,
    summary="Refine, project and normalise a graph's embeddings",
)
async def project_manifold(
    body: ManifoldRequest,
    _key: str = Depends(require_api_key),
) -> ManifoldResponse:
    """Return one positioned, tagged point per graph node, in request order."""
    graph, skipped = body.build()
    dim = validate_embeddings(graph.node_ids, body.embeddings)
    transformer_config = resolve_transformer_config(
        dim, body.transformer.overrides() if body.transformer else None
    )
    projector_config = _projector_config(body.projector)
    range_min, range_max = _bounds(body.range)

    result = await run_manifold_pipeline(
        graph,
        body.embeddings,
        transformer_config,
        projector_config,
        range_min,
        range_max,
    )

    points = []
    for node in graph.nodes:
        points.append(
            ManifoldPoint(
                id=node.id,
                label=node.label,
                type=node.type,
                domain=node.domain,
                position=list(result.projection.coordinates[node.id]),
            )
        )

    logger.info(
        "manifold_projected",
        points=len(points),
        triangles=result.refinement.complex_stats.num_triangles,
        skipped_edges=len(skipped),
    )
    return ManifoldResponse(
        points=points,
        complex_stats=ComplexStatsOut.from_stats(result.refinement.complex_stats),
        skipped_edges=[SkippedEdgeOut.from_edge(e) for e in skipped],
        n_components=result.projection.n_components,
        epochs_completed=result.projection.epochs_completed,
        cancelled=result.projection.cancelled,
    )
